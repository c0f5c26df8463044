"""Account sync and backup package."""

from subscript_gateway.services.sync.backup import stamp_backup, validate_backup_payload
from subscript_gateway.services.sync.client import (
    ServerUnreachableError,
    SyncAuthError,
    SyncClient,
    SyncRejectedError,
    SyncTimeoutError,
)
from subscript_gateway.services.sync.pantry import PantryBackupClient

__all__ = [
    "PantryBackupClient",
    "ServerUnreachableError",
    "SyncAuthError",
    "SyncClient",
    "SyncRejectedError",
    "SyncTimeoutError",
    "stamp_backup",
    "validate_backup_payload",
]
