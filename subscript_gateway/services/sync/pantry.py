"""
Pantry Backup Client

Alternate backup target: a single JSON basket on getpantry.cloud, keyed
by the user's Pantry ID. No accounts, no tokens; whoever holds the ID can
read and overwrite the basket.
"""

import time
from typing import Optional

import httpx
import structlog

from subscript_gateway.services.errors import ConfigurationError, DataError, TransportError
from subscript_gateway.services.sync.backup import stamp_backup, validate_backup_payload


logger = structlog.get_logger(__name__)

BASE_URL = "https://getpantry.cloud/apiv1/pantry"
BASKET_NAME = "subscript_backup"


class PantryBackupClient:
    """Upload and download the backup basket."""

    def __init__(
        self,
        pantry_id: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._pantry_id = (pantry_id or "").strip()
        self._timeout = timeout
        self._transport = transport

    @property
    def basket_url(self) -> str:
        if not self._pantry_id:
            raise ConfigurationError("Please enter a Pantry ID.")
        return f"{BASE_URL}/{self._pantry_id}/basket/{BASKET_NAME}"

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                return await client.request(
                    method,
                    url,
                    headers={"Content-Type": "application/json"},
                    **kwargs,
                )
        except httpx.HTTPError as e:
            logger.error("pantry_request_failed", method=method, error=str(e))
            raise TransportError(f"Pantry request failed: {e}") from e

    async def upload_backup(self, data: dict) -> dict:
        """
        Overwrite the basket with data plus a lastUpdated stamp.

        Returns the payload that was sent.
        """
        url = self.basket_url
        payload = stamp_backup(data)

        response = await self._send("POST", url, json=payload)
        if response.status_code == 404:
            raise ConfigurationError("Pantry ID is invalid or does not exist.")
        if not response.is_success:
            raise TransportError(f"Upload failed: {response.reason_phrase}")

        logger.info(
            "pantry_backup_uploaded",
            subscriptions=len(payload.get("subscriptions") or []),
        )
        return payload

    async def download_backup(self) -> dict:
        """
        Fetch the basket, bypassing caches.

        Raises:
            DataError: No backup stored, or the basket is not a backup
        """
        url = self.basket_url

        response = await self._send("GET", url, params={"t": int(time.time() * 1000)})
        if response.status_code == 404:
            raise DataError("No backup found (or the Pantry ID is wrong).")
        if not response.is_success:
            raise TransportError(f"Download failed: {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as e:
            raise DataError("Cloud backup is not valid JSON") from e

        return validate_backup_payload(data)
