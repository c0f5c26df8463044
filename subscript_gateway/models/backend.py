"""
Backend Data Models

Schemas for the auth/sync backend and its clients.

Storage layout in the key-value store:
    user:<username>     -> {"hash": "...", "salt": "..."}
    session:<token>     -> "<username>"     (expires after the session TTL)
    data:<username>     -> "<raw JSON text>" (last write wins)
"""

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator


T = TypeVar("T")


def user_key(username: str) -> str:
    return f"user:{username}"


def session_key(token: str) -> str:
    return f"session:{token}"


def data_key(username: str) -> str:
    return f"data:{username}"


class AuthRequest(BaseModel):
    """
    Body of register/login requests.

    Only the username is trimmed. The password is hashed exactly as sent.
    """

    username: str = Field(default="", max_length=64)
    password: str = Field(default="", max_length=256)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class UserAccount(BaseModel):
    """
    A registered account.

    Immutable after registration. The password itself is never stored.
    """

    username: str
    password_hash: str = Field(..., repr=False)
    salt: str = Field(..., repr=False)

    def to_record(self) -> dict:
        return {"hash": self.password_hash, "salt": self.salt}

    @classmethod
    def from_record(cls, username: str, record: dict) -> "UserAccount":
        return cls(
            username=username,
            password_hash=record["hash"],
            salt=record["salt"],
        )


class Session(BaseModel):
    """An issued session token. Expiry is enforced by the store on read."""

    token: str = Field(..., repr=False)
    username: str
    expires_at: datetime


class ApiEnvelope(BaseModel, Generic[T]):
    """Uniform response envelope returned by every backend route."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    def to_body(self) -> dict[str, Any]:
        """Envelope as JSON body; absent fields are omitted."""
        body: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            body["data"] = self.data
        if self.error is not None:
            body["error"] = self.error
        return body


class LoginData(BaseModel):
    """Payload of a successful login."""

    token: str
