"""Request signing package."""

from subscript_gateway.services.signing.signer import (
    RequestSigner,
    build_authorization,
    build_canonical_string,
    compute_signature,
    format_http_date,
)

__all__ = [
    "RequestSigner",
    "build_authorization",
    "build_canonical_string",
    "compute_signature",
    "format_http_date",
]
