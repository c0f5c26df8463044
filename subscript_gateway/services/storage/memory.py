"""
Key-Value Store Implementations

InMemoryKeyValueStore keeps everything in a dict; JsonFileKeyValueStore
adds a JSON file snapshot after every write so a single-server deployment
survives restarts.

TRADEOFFS:
- No locking. Concurrent pushes for one account race under last-writer-wins.
- put_if_absent is atomic within one event loop because it never awaits
  between the check and the set. It is NOT atomic across processes
  sharing one file.
"""

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import structlog

from subscript_gateway.services.storage.interface import KeyValueStore, StorageError


logger = structlog.get_logger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed store with read-time expiry.

    Entries are (value, expires_at) where expires_at is a wall-clock
    timestamp or None for keys that never expire.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, tuple[str, Optional[float]]] = {}

    def _expires_at(self, ttl_seconds: Optional[int]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live_value(key)

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self._entries[key] = (value, self._expires_at(ttl_seconds))
        self._persist()

    async def put_if_absent(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        if self._live_value(key) is not None:
            return False
        self._entries[key] = (value, self._expires_at(ttl_seconds))
        self._persist()
        return True

    def _persist(self) -> None:
        """Hook for durable subclasses."""
        pass


class JsonFileKeyValueStore(InMemoryKeyValueStore):
    """
    In-memory store mirrored to a JSON file.

    The whole snapshot is rewritten atomically (temp file + rename)
    after each write.
    """

    def __init__(self, path: str | Path, clock: Callable[[], float] = time.time):
        super().__init__(clock=clock)
        self._path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read store file {self._path}: {e}")

        for key, entry in raw.items():
            self._entries[key] = (entry["value"], entry.get("expires_at"))
        logger.info("kv_store_loaded", path=str(self._path), keys=len(self._entries))

    def _persist(self) -> None:
        snapshot = {
            key: {"value": value, "expires_at": expires_at}
            for key, (value, expires_at) in self._entries.items()
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(snapshot, tmp, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except OSError as e:
            raise StorageError(f"Cannot write store file {self._path}: {e}")


def create_store(store_url: str) -> Optional[KeyValueStore]:
    """
    Build a store from a URL.

    Supported:
        memory://              - process-local dict
        file:///abs/path.json  - JSON file snapshot

    Returns None when store_url is empty (backend reports a
    configuration error on every /api route).

    Raises:
        StorageError: For an unsupported scheme or a missing file path
    """
    if not store_url:
        return None

    parsed = urlparse(store_url)
    if parsed.scheme == "memory":
        return InMemoryKeyValueStore()
    if parsed.scheme == "file":
        path = (parsed.netloc + parsed.path) if parsed.netloc else parsed.path
        if not path:
            raise StorageError("file:// store URL needs a path")
        return JsonFileKeyValueStore(path)

    raise StorageError(f"Unsupported store URL scheme: {parsed.scheme!r}")
