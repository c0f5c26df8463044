"""
Storage Services Package

Provides the abstract key-value interface used by the backend and its
in-memory / JSON-file implementations.
"""

from subscript_gateway.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStore,
    StorageError,
    StoreNotConfiguredError,
)
from subscript_gateway.services.storage.memory import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    create_store,
)
from subscript_gateway.services.storage.audit_store import KeyValueAuditStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStore",
    # Exceptions
    "StorageError",
    "StoreNotConfiguredError",
    # Implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueAuditStorage",
    "create_store",
]
