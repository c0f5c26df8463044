"""
Error Taxonomy for the Gateway

Every failure the gateway can surface falls into one of six families.
Callers decide how to present an error by its family, not by its message:

- ConfigurationError: the user must fix settings (never retried)
- TransportError:     network trouble, the caller may retry
- VendorError:        the inference provider said no (code + message verbatim)
- ParseError:         the model answered but we could not read the JSON
- AuthError:          bad credentials or missing/expired session token
- DataError:          malformed backup/sync payload or unusable document

Service-specific subclasses live at the top of each service module.
"""

from typing import Optional


class GatewayError(Exception):
    """Base exception for all gateway errors."""
    pass


class ConfigurationError(GatewayError):
    """A credential, relay URL, base URL or store is missing or unusable."""
    pass


class TransportError(GatewayError):
    """Timeout, refused connection, abrupt close or unexpected HTTP status."""
    pass


class VendorError(GatewayError):
    """The inference vendor reported a non-zero status code."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.vendor_message = message
        self.code = code
        if code is not None:
            super().__init__(f"API Error: {code} - {message}")
        else:
            super().__init__(message)


class ParseError(GatewayError):
    """Every JSON repair strategy failed on a model response."""
    pass


class AuthError(GatewayError):
    """Bad credentials, or a missing/expired session token."""
    pass


class DataError(GatewayError):
    """Malformed backup/sync payload or a document with no usable content."""
    pass


def user_message(error: Exception) -> str:
    """
    Map an error to the message shown to the user.

    Setup problems become setup prompts, network and vendor problems
    become retryable status messages, parse problems become a request
    to clarify.
    """
    if isinstance(error, ConfigurationError):
        return f"⚙️ Please check your settings: {error}"
    if isinstance(error, AuthError):
        return f"🔐 Please sign in again: {error}"
    if isinstance(error, (TransportError, VendorError)):
        return f"⚠️ {error} Please try again."
    if isinstance(error, ParseError):
        return "🤔 I couldn't read that clearly. Could you describe the amount and date?"
    if isinstance(error, DataError):
        return f"❌ {error}"
    return f"❌ Unexpected error: {error}"
