"""
Auth & Sync Service

Stateless handlers over a key-value store:

    register(username, password)   -> user:<username> = {hash, salt}
    login(username, password)      -> session:<token> = username (TTL)
    push(token, body)              -> data:<username> = body (overwrite)
    pull(token)                    -> data:<username> or None

DESIGN DECISION: The service knows nothing about HTTP. It raises
HandlerError subclasses that carry the status code; the FastAPI layer
turns them into envelopes. Anything else is a 500.

CRITICAL: The session token is the only capability needed for a user's
data. The password is never re-checked after login, and is never logged.
"""

import hashlib
import hmac
import json
import secrets
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from pydantic import ValidationError

from subscript_gateway.models.audit import AuditEventBuilder
from subscript_gateway.models.backend import (
    AuthRequest,
    Session,
    UserAccount,
    data_key,
    session_key,
    user_key,
)
from subscript_gateway.services.errors import AuthError, GatewayError
from subscript_gateway.services.storage import KeyValueStore, StoreNotConfiguredError


DEFAULT_SESSION_TTL_SECONDS = 7 * 24 * 60 * 60


class HandlerError(GatewayError):
    """A request the service refuses, with the HTTP status to report."""

    status_code = 400


class InvalidRequestError(HandlerError):
    """Missing fields, short username or a body that is not JSON."""

    status_code = 400


class UsernameTakenError(HandlerError):
    """The username is already registered."""

    status_code = 409


class UnknownUserError(HandlerError, AuthError):
    """Login for a username that was never registered."""

    status_code = 404


class WrongPasswordError(HandlerError, AuthError):
    """Password hash mismatch."""

    status_code = 401


class UnauthorizedError(HandlerError, AuthError):
    """No token, or the session has expired."""

    status_code = 401


def hash_password(password: str, salt: str) -> str:
    """SHA-256 of password + salt, hex encoded."""
    return hashlib.sha256((password + salt).encode("utf-8")).hexdigest()


def parse_token(authorization: Optional[str]) -> str:
    """Accept 'Bearer <token>' or the bare token."""
    value = (authorization or "").strip()
    if value[:7].lower() == "bearer ":
        value = value[7:].strip()
    return value


def parse_auth_request(body: object) -> AuthRequest:
    """
    Validate a register/login body.

    Raises:
        InvalidRequestError: If the body is not a username/password object
    """
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    try:
        return AuthRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid request: {e.errors()[0]['msg']}")


class AuthGatewayService:
    """
    Account registration, login and last-writer-wins data sync.

    Usage:
        service = AuthGatewayService(InMemoryKeyValueStore())
        await service.register(AuthRequest(username="alice", password="pw"))
        session = await service.login(AuthRequest(username="alice", password="pw"))
        await service.push(session.token, '{"subscriptions": []}')
    """

    def __init__(
        self,
        store: Optional[KeyValueStore],
        *,
        session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        min_username_length: int = 3,
        audit_logger=None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._session_ttl_seconds = session_ttl_seconds
        self._min_username_length = min_username_length
        self._audit_logger = audit_logger
        self._clock = clock

    def require_store(self) -> KeyValueStore:
        """
        The bound store.

        Raises:
            StoreNotConfiguredError: If no store was bound
        """
        if self._store is None:
            raise StoreNotConfiguredError(
                "Key-value store is not configured. Set BACKEND_STORE_URL "
                "(memory:// or file:///path/kv.json) and restart the backend."
            )
        return self._store

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def register(self, request: AuthRequest) -> None:
        """
        Create an account.

        Raises:
            InvalidRequestError: Username too short or password missing (400)
            UsernameTakenError: Username already registered (409)
        """
        store = self.require_store()
        if len(request.username) < self._min_username_length:
            raise InvalidRequestError(
                f"Username must be at least {self._min_username_length} characters"
            )
        if not request.password:
            raise InvalidRequestError("Password is required")

        salt = secrets.token_hex(16)
        account = UserAccount(
            username=request.username,
            password_hash=hash_password(request.password, salt),
            salt=salt,
        )

        created = await store.put_if_absent(
            user_key(account.username),
            json.dumps(account.to_record()),
        )
        if not created:
            raise UsernameTakenError("User already exists")

        await self._audit(AuditEventBuilder.account_registered(account.username))

    async def login(self, request: AuthRequest) -> Session:
        """
        Check the password and issue a session token.

        Raises:
            UnknownUserError: No such user (404)
            WrongPasswordError: Hash mismatch (401)
        """
        store = self.require_store()
        raw = await store.get(user_key(request.username))
        if raw is None:
            await self._audit(AuditEventBuilder.login_failed(request.username, "unknown_user"))
            raise UnknownUserError("User not found")

        account = UserAccount.from_record(request.username, json.loads(raw))
        candidate = hash_password(request.password, account.salt)
        if not hmac.compare_digest(candidate, account.password_hash):
            await self._audit(AuditEventBuilder.login_failed(request.username, "wrong_password"))
            raise WrongPasswordError("Invalid password")

        token = secrets.token_urlsafe(32)
        await store.put(
            session_key(token),
            account.username,
            ttl_seconds=self._session_ttl_seconds,
        )
        await self._audit(AuditEventBuilder.login_succeeded(account.username))

        return Session(
            token=token,
            username=account.username,
            expires_at=datetime.fromtimestamp(
                self._clock() + self._session_ttl_seconds,
                tz=timezone.utc,
            ),
        )

    async def resolve_session(self, authorization: Optional[str]) -> str:
        """
        Map an Authorization header value to a username.

        Raises:
            UnauthorizedError: Missing token or expired session (401)
        """
        store = self.require_store()
        token = parse_token(authorization)
        if not token:
            raise UnauthorizedError("Unauthorized")

        username = await store.get(session_key(token))
        if not username:
            raise UnauthorizedError("Unauthorized")
        return username

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def push(self, authorization: Optional[str], body: Union[str, bytes]) -> None:
        """
        Overwrite the caller's data with body.

        The body text is stored as received so a later pull returns the
        same bytes.

        Raises:
            UnauthorizedError: Bad token (401)
            InvalidRequestError: Body is not UTF-8 JSON (400)
        """
        username = await self.resolve_session(authorization)
        if isinstance(body, bytes):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError:
                raise InvalidRequestError("Request body must be UTF-8 encoded JSON")
        try:
            json.loads(body)
        except ValueError:
            raise InvalidRequestError("Request body must be valid JSON")

        await self.require_store().put(data_key(username), body)
        await self._audit(AuditEventBuilder.data_pushed(username, len(body.encode("utf-8"))))

    async def pull(self, authorization: Optional[str]) -> Optional[str]:
        """
        Return the caller's stored JSON text, or None.

        Raises:
            UnauthorizedError: Bad token (401)
        """
        username = await self.resolve_session(authorization)
        stored = await self.require_store().get(data_key(username))
        await self._audit(AuditEventBuilder.data_pulled(username, stored is not None))
        return stored
