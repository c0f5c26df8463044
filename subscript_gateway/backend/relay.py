"""
Vendor Relay

Browser code may not call the inference vendor directly (no CORS
grant). The relay accepts the already-signed request on its own origin
and forwards it to the vendor host over HTTPS:

- path, query and body pass through untouched (the signature covers them)
- the outbound header set is rebuilt from scratch; Origin and Referer
  are never forwarded
- the upstream response is returned with permissive CORS headers
"""

from typing import Optional

import httpx
import structlog
from fastapi import Response
from fastapi.responses import JSONResponse


logger = structlog.get_logger(__name__)

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, Accept, Origin, X-Requested-With",
    "Access-Control-Max-Age": "86400",
}

RESPONSE_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class VendorRelay:
    """Forwards non-API requests to the vendor host."""

    def __init__(
        self,
        target_host: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._target_host = target_host
        self._timeout = timeout
        self._transport = transport

    def target_url(self, path: str, query: str = "") -> str:
        url = f"https://{self._target_host}/{path.lstrip('/')}"
        if query:
            url = f"{url}?{query}"
        return url

    async def forward(
        self,
        method: str,
        path: str,
        query: str,
        body: bytes,
    ) -> Response:
        """Send the request upstream and mirror the answer back."""
        url = self.target_url(path, query)
        headers = {
            "Host": self._target_host,
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                upstream = await client.request(
                    method,
                    url,
                    headers=headers,
                    content=body or None,
                )
        except httpx.HTTPError as e:
            logger.error("relay_upstream_failed", method=method, path=path, error=str(e))
            return JSONResponse(
                {"error": str(e) or type(e).__name__},
                status_code=500,
                headers={"Access-Control-Allow-Origin": "*"},
            )

        logger.debug(
            "relay_forwarded",
            method=method,
            path=path,
            status_code=upstream.status_code,
        )

        response_headers = dict(RESPONSE_CORS_HEADERS)
        content_type = upstream.headers.get("content-type")
        if content_type:
            response_headers["Content-Type"] = content_type

        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=response_headers,
        )
