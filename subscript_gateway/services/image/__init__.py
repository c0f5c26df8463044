"""Image synthesis package."""

from subscript_gateway.services.image.synthesis import (
    EmptyImageDataError,
    ImageSynthesisClient,
    ImageSynthesisHTTPError,
    rewrite_origin,
)

__all__ = [
    "EmptyImageDataError",
    "ImageSynthesisClient",
    "ImageSynthesisHTTPError",
    "rewrite_origin",
]
