"""
Sync Client

Thin async wrapper over the backend's four routes. Every request is
bounded by one timeout, and every failure comes back as a typed error:

- SyncTimeoutError:       no response within the timeout
- ServerUnreachableError: DNS or connection failure
- SyncRejectedError:      the backend answered with success = false
- SyncAuthError:          401/404 from the backend (also an AuthError)
- DataError:              the response was not a JSON envelope, or a
                          pulled blob is not a backup

CRITICAL: The client never retries. The caller shows the message and
the user decides.
"""

from typing import Any, Optional

import httpx
import structlog

from subscript_gateway.services.errors import (
    AuthError,
    ConfigurationError,
    DataError,
    GatewayError,
    TransportError,
)
from subscript_gateway.services.sync.backup import validate_backup_payload


logger = structlog.get_logger(__name__)


class SyncTimeoutError(TransportError):
    """The backend did not answer within the timeout."""
    pass


class ServerUnreachableError(TransportError):
    """DNS resolution or the TCP connection to the backend failed."""
    pass


class SyncRejectedError(GatewayError):
    """The backend answered with an error envelope."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class SyncAuthError(SyncRejectedError, AuthError):
    """Unknown user, wrong password, or a missing/expired session."""
    pass


class SyncClient:
    """
    Client for the account and sync backend.

    Usage:
        client = SyncClient("https://sync.example.com")
        token = await client.login("alice", "secret")
        await client.push(token, {"subscriptions": [], "budget": {}})
        data = await client.pull(token)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or "").strip().rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        json_body: Any = None,
    ) -> Any:
        """
        Issue one request and unwrap the envelope's data.

        Raises:
            ConfigurationError: No base URL (checked before any I/O)
        """
        if not self._base_url:
            raise ConfigurationError("Please configure the sync server URL in settings first.")

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, json=json_body)
        except httpx.TimeoutException as e:
            raise SyncTimeoutError(
                f"Request timed out ({self._timeout:g}s). The server did not respond; "
                "check the server URL and your network."
            ) from e
        except (httpx.ConnectError, httpx.NetworkError) as e:
            raise ServerUnreachableError(
                "Cannot reach the server. Check that the domain is active "
                "and reachable from your network."
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Sync request failed: {e}") from e

        try:
            envelope = response.json()
        except ValueError as e:
            raise DataError(
                f"Server returned a non-JSON response (HTTP {response.status_code})"
            ) from e

        if not isinstance(envelope, dict) or "success" not in envelope:
            raise DataError("Server response is not a valid envelope")

        if not envelope.get("success") or not response.is_success:
            message = str(envelope.get("error") or f"HTTP {response.status_code}")
            logger.warning(
                "sync_request_rejected",
                path=path,
                status_code=response.status_code,
                error=message,
            )
            if response.status_code in (401, 404):
                raise SyncAuthError(response.status_code, message)
            raise SyncRejectedError(response.status_code, message)

        return envelope.get("data")

    async def register(self, username: str, password: str) -> None:
        """Create an account."""
        await self._request(
            "POST",
            "/api/auth/register",
            json_body={"username": username, "password": password},
        )

    async def login(self, username: str, password: str) -> str:
        """Log in and return the session token."""
        data = await self._request(
            "POST",
            "/api/auth/login",
            json_body={"username": username, "password": password},
        )
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise DataError("Login response did not contain a token")
        return str(token)

    async def push(self, token: str, data: dict) -> None:
        """Overwrite the server copy with data (last writer wins)."""
        if not token:
            raise AuthError("Not logged in")
        await self._request("POST", "/api/sync/push", token=token, json_body=data)

    async def pull(self, token: str) -> Optional[dict]:
        """
        Fetch the server copy, or None if nothing was pushed yet.

        Raises:
            DataError: If the stored blob is not a backup
        """
        if not token:
            raise AuthError("Not logged in")
        data = await self._request("GET", "/api/sync/pull", token=token)
        if data is None:
            return None
        return validate_backup_payload(data)
