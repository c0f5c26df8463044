"""
Audit storage on top of the key-value store.

Each event is written once under audit:<event_id> and expires after the
retention period. There is no index.
"""

from uuid import UUID

from subscript_gateway.models.audit import AuditEvent
from subscript_gateway.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStore,
)


class KeyValueAuditStorage(AuditStorageInterface):
    """Append-only audit sink backed by a KeyValueStore."""

    def __init__(self, store: KeyValueStore, retention_seconds: int):
        self._store = store
        self._retention_seconds = retention_seconds

    @staticmethod
    def _key(event_id: UUID) -> str:
        return f"audit:{event_id}"

    async def append_event(self, event: AuditEvent) -> bool:
        return await self._store.put_if_absent(
            self._key(event.event_id),
            event.model_dump_json(),
            ttl_seconds=self._retention_seconds,
        )
