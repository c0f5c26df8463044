"""
Abstract Storage Interface

DESIGN DECISION: The backend talks to an abstract key-value store.
This allows us to:
1. Run against an in-memory store in tests and development
2. Persist to a JSON file on a single small server
3. Swap in a hosted KV service later without touching the handlers

The interface is intentionally tiny - get, put (with optional TTL)
and put_if_absent. Expiry is checked when a key is read; nothing
sweeps expired keys proactively.
"""

from abc import ABC, abstractmethod
from typing import Optional

from subscript_gateway.models.audit import AuditEvent
from subscript_gateway.services.errors import ConfigurationError


class KeyValueStore(ABC):
    """
    Abstract interface for the backend's key-value store.

    Values are strings. Callers serialize JSON themselves so that
    stored payloads can be returned byte-for-byte.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Returns:
            The stored value, or None if the key is absent or expired
        """
        pass

    @abstractmethod
    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        """
        Write a value, replacing any previous one.

        Args:
            key: Storage key
            value: Value to store
            ttl_seconds: Expire the key after this many seconds

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def put_if_absent(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """
        Write a value only if the key does not exist (or has expired).

        Returns:
            True if the value was written, False if the key already existed
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StoreNotConfiguredError(StorageError, ConfigurationError):
    """No backing store was configured for the backend."""
    pass
