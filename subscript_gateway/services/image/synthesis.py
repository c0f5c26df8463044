"""
Image Synthesis Client

One signed HTTP POST to the vendor's text-to-image endpoint.

DESIGN DECISION: Every call goes through the relay.
The vendor does not grant cross-origin access, so the signed request is
built for the vendor host and then re-pointed at the relay origin. The
relay forwards path and query untouched, which keeps the signature valid:
the canonical string covers the vendor host, not the relay.

This service handles:
1. Precondition checks (relay URL and credential) before any network I/O
2. Signing and origin rewriting
3. Response classification: HTTP error, vendor error, empty payload
4. Wrapping the base64 payload as a PNG data URI

CRITICAL: No retries. A failed generation is reported once, as-is.
"""

import random
from typing import Optional
from urllib.parse import urlsplit, urlunsplit
from uuid import UUID, uuid4

import httpx
import structlog

from subscript_gateway.models.audit import AuditEventBuilder
from subscript_gateway.models.gateway import ModelCredential
from subscript_gateway.services.errors import (
    ConfigurationError,
    DataError,
    TransportError,
    VendorError,
)
from subscript_gateway.services.signing import RequestSigner


logger = structlog.get_logger(__name__)

IMAGE_SIZE = 1024
INFERENCE_STEPS = 20
GUIDANCE_SCALE = 5.0
SCHEDULER = "Euler"
NO_ADAPTER_PATCH = ["0"]


class ImageSynthesisHTTPError(TransportError):
    """The relay or vendor answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP Error {status_code}: {body}")


class EmptyImageDataError(VendorError):
    """The vendor reported success but sent no image."""
    pass


def rewrite_origin(url: str, relay_base_url: str) -> str:
    """
    Replace scheme and host of url with the relay's, keeping path and query.

    Raises:
        ConfigurationError: If the relay URL has no scheme or host
    """
    relay = urlsplit(relay_base_url.strip())
    if not relay.scheme or not relay.netloc:
        raise ConfigurationError(f"Invalid relay URL: {relay_base_url!r}")

    target = urlsplit(url)
    return urlunsplit((relay.scheme, relay.netloc, target.path, target.query, ""))


class ImageSynthesisClient:
    """
    Text-to-image generation through the relay.

    Usage:
        client = ImageSynthesisClient(credential, relay_base_url="https://relay.example")
        data_uri = await client.generate("a cat reading a receipt")
    """

    def __init__(
        self,
        credential: ModelCredential,
        *,
        relay_base_url: str = "",
        endpoint: str = "https://maas-api.cn-huabei-1.xf-yun.com/v2.1/tti",
        default_domain: str = "xopsdxl",
        timeout: float = 60.0,
        signer: Optional[RequestSigner] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        audit_logger=None,
    ):
        self._credential = credential
        self._relay_base_url = relay_base_url
        self._endpoint = endpoint
        self._default_domain = default_domain
        self._timeout = timeout
        self._signer = signer or RequestSigner()
        self._transport = transport
        self._audit_logger = audit_logger

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    def build_body(self, prompt: str) -> dict:
        """The single JSON body sent to the generation endpoint."""
        return {
            "header": {
                "app_id": self._credential.app_id,
                "uid": uuid4().hex[:32],
                "patch_id": list(NO_ADAPTER_PATCH),
            },
            "parameter": {
                "chat": {
                    "domain": self._credential.domain_or(self._default_domain),
                    "width": IMAGE_SIZE,
                    "height": IMAGE_SIZE,
                    "seed": random.randint(1, 2**31 - 1),
                    "num_inference_steps": INFERENCE_STEPS,
                    "guidance_scale": GUIDANCE_SCALE,
                    "scheduler": SCHEDULER,
                },
            },
            "payload": {
                "message": {
                    "text": [{"role": "user", "content": prompt}],
                },
            },
        }

    @staticmethod
    def _extract_image(data: dict) -> str:
        """
        Read the vendor reply.

        Raises:
            VendorError: header.code != 0
            EmptyImageDataError: no base64 payload present
        """
        header = data.get("header")
        if isinstance(header, dict):
            code = header.get("code", 0)
            if code not in (0, None):
                raise VendorError(str(header.get("message") or "Unknown error"), code=code)

        payload = data.get("payload")
        choices = payload.get("choices") if isinstance(payload, dict) else None
        items = choices.get("text") if isinstance(choices, dict) else None
        for item in items if isinstance(items, list) else []:
            if isinstance(item, dict) and item.get("content"):
                return str(item["content"])

        raise EmptyImageDataError("Empty image data returned by the vendor")

    async def generate(
        self,
        prompt: str,
        relay_base_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """
        Generate an image and return it as a data URI.

        Raises:
            ConfigurationError: Relay URL or credential missing (no request issued)
            ImageSynthesisHTTPError: Non-2xx response
            TransportError: Timeout or connection failure
            VendorError / EmptyImageDataError: Vendor-level failure
        """
        relay = (relay_base_url if relay_base_url is not None else self._relay_base_url) or ""
        if not relay.strip():
            raise ConfigurationError(
                "A relay URL is required for image generation (the vendor blocks direct browser calls)."
            )
        if not self._credential.is_complete:
            raise ConfigurationError("Image model credentials are not configured.")

        signed = self._signer.sign(self._credential, self._endpoint, method="POST")
        url = rewrite_origin(signed.url, relay)

        logger.info("image_generation_started", prompt_chars=len(prompt))

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=self.build_body(prompt))
        except httpx.TimeoutException as e:
            await self._audit(AuditEventBuilder.image_generation_failed(
                error_message="timeout",
                correlation_id=correlation_id,
            ))
            raise TransportError(f"Image generation timed out ({self._timeout:g}s)") from e
        except httpx.HTTPError as e:
            await self._audit(AuditEventBuilder.image_generation_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            raise TransportError(f"Image generation request failed: {e}") from e

        if not response.is_success:
            await self._audit(AuditEventBuilder.image_generation_failed(
                error_message=response.text,
                status_code=response.status_code,
                correlation_id=correlation_id,
            ))
            raise ImageSynthesisHTTPError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise DataError(f"Image endpoint returned non-JSON content: {e}") from e

        try:
            image_b64 = self._extract_image(data if isinstance(data, dict) else {})
        except VendorError as e:
            await self._audit(AuditEventBuilder.image_generation_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            raise

        await self._audit(AuditEventBuilder.image_generated(
            prompt_chars=len(prompt),
            correlation_id=correlation_id,
        ))
        return f"data:image/png;base64,{image_b64}"
