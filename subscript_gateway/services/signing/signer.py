"""
Request Signing for the Inference Vendor

Every outbound call to the vendor carries an HMAC-SHA256 signature over a
canonical string:

    host: <host>
    date: <RFC1123 date>
    <METHOD> <path> HTTP/1.1

The vendor-specific wire format nests base64 twice: the signature is
base64-encoded, embedded in an authorization assembly, and the whole
assembly is base64-encoded again.

DESIGN DECISION: The signed values travel as query parameters, not headers.
A browser websocket cannot set custom headers at handshake time, and the
vendor uses the same scheme for its plain HTTP endpoints.

Spaces in the query must be encoded as %20 - the vendor rejects '+'.
"""

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Callable, Optional
from urllib.parse import quote, urlencode, urlsplit

from subscript_gateway.models.gateway import ModelCredential, SignedRequest
from subscript_gateway.services.errors import ConfigurationError


ALGORITHM = "hmac-sha256"
SIGNED_HEADERS = "host date request-line"


def format_http_date(moment: datetime) -> str:
    """Format a moment as an RFC1123 date, e.g. 'Mon, 19 Oct 2026 08:00:00 GMT'."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)


def build_canonical_string(host: str, date: str, method: str, path: str) -> str:
    """The exact text that gets signed."""
    return f"host: {host}\ndate: {date}\n{method.upper()} {path} HTTP/1.1"


def compute_signature(secret: str, canonical: str) -> str:
    """
    HMAC-SHA256 of the canonical string, base64-encoded.

    Raises:
        ConfigurationError: If the HMAC primitive is unavailable
    """
    try:
        digest = hmac.new(
            secret.encode("utf-8"),
            canonical.encode("utf-8"),
            hashlib.sha256,
        ).digest()
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"HMAC-SHA256 signing is unavailable: {e}")
    return base64.b64encode(digest).decode("ascii")


def build_authorization(api_key: str, signature: str) -> str:
    """The double-base64 authorization value."""
    assembly = (
        f'api_key="{api_key}", algorithm="{ALGORITHM}", '
        f'headers="{SIGNED_HEADERS}", signature="{signature}"'
    )
    return base64.b64encode(assembly.encode("utf-8")).decode("ascii")


class RequestSigner:
    """
    Produces a fresh SignedRequest for every vendor call.

    Holds no state besides the clock. Two calls at different instants
    yield different signatures; two calls with the same inputs and the
    same instant yield byte-identical ones.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sign(
        self,
        credential: ModelCredential,
        url: str,
        method: str = "GET",
        now: Optional[datetime] = None,
    ) -> SignedRequest:
        """
        Sign a request to the given endpoint URL.

        Args:
            credential: Vendor credential for the capability
            url: Endpoint URL (ws://, wss://, http:// or https://)
            method: HTTP method of the request line
            now: Signing instant; defaults to the signer's clock

        Returns:
            SignedRequest whose url carries authorization, date and host

        Raises:
            ConfigurationError: If the credential is incomplete or the URL
                has no host
        """
        if not credential.api_key or not credential.api_secret:
            raise ConfigurationError(
                "AI API credentials are not configured (api_key and api_secret are required)"
            )

        parts = urlsplit(url)
        host = parts.hostname
        if not host:
            raise ConfigurationError(f"Endpoint URL has no host: {url!r}")
        if parts.port:
            host = f"{host}:{parts.port}"
        path = parts.path or "/"
        method = method.upper()

        date = format_http_date(now or self._clock())
        canonical = build_canonical_string(host, date, method, path)
        signature = compute_signature(credential.api_secret, canonical)
        authorization = build_authorization(credential.api_key, signature)

        query = urlencode(
            {"authorization": authorization, "date": date, "host": host},
            quote_via=quote,
        )
        signed_url = f"{parts.scheme}://{parts.netloc}{path}?{query}"

        return SignedRequest(
            url=signed_url,
            method=method,
            host=host,
            date=date,
            authorization=authorization,
        )
