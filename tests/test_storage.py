"""Tests for the key-value stores and the audit sink built on them."""

import asyncio

import pytest
import structlog

from subscript_gateway.audit import AuditLogger, configure_logging
from subscript_gateway.models.audit import AuditEvent, AuditEventBuilder
from subscript_gateway.services.errors import ConfigurationError
from subscript_gateway.services.storage import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    StorageError,
    StoreNotConfiguredError,
    create_store,
)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryStore:
    """Tests for the dict-backed store."""

    def test_put_and_get(self):
        """A written value reads back unchanged."""
        store = InMemoryKeyValueStore()

        async def scenario():
            await store.put("k", '{"a": 1}')
            return await store.get("k")

        assert asyncio.run(scenario()) == '{"a": 1}'

    def test_missing_key(self):
        """Absent keys read as None."""
        assert asyncio.run(InMemoryKeyValueStore().get("nope")) is None

    def test_expiry_checked_on_read(self):
        """A key past its TTL is gone."""
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)

        async def scenario():
            await store.put("session:t", "alice", ttl_seconds=60)
            before = await store.get("session:t")
            clock.now += 61
            after = await store.get("session:t")
            return before, after

        assert asyncio.run(scenario()) == ("alice", None)

    def test_put_if_absent(self):
        """Only the first writer wins."""
        store = InMemoryKeyValueStore()

        async def scenario():
            first = await store.put_if_absent("user:bob", "1")
            second = await store.put_if_absent("user:bob", "2")
            return first, second, await store.get("user:bob")

        assert asyncio.run(scenario()) == (True, False, "1")

    def test_put_if_absent_over_expired_key(self):
        """An expired key counts as absent."""
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)

        async def scenario():
            await store.put("k", "old", ttl_seconds=1)
            clock.now += 2
            return await store.put_if_absent("k", "new"), await store.get("k")

        assert asyncio.run(scenario()) == (True, "new")


class TestJsonFileStore:
    """Tests for the file-mirrored store."""

    def test_survives_reopen(self, tmp_path):
        """Data written by one instance is read by the next."""
        path = tmp_path / "kv.json"

        async def write():
            await JsonFileKeyValueStore(path).put("data:alice", '{"budget": {}}')

        asyncio.run(write())
        assert asyncio.run(JsonFileKeyValueStore(path).get("data:alice")) == '{"budget": {}}'

    def test_expiry_survives_reopen(self, tmp_path):
        """Expiry timestamps are persisted too."""
        path = tmp_path / "kv.json"
        clock = FakeClock()

        asyncio.run(JsonFileKeyValueStore(path, clock=clock).put("s", "v", ttl_seconds=10))
        clock.now += 11
        assert asyncio.run(JsonFileKeyValueStore(path, clock=clock).get("s")) is None

    def test_corrupt_file(self, tmp_path):
        """An unreadable snapshot is a storage error."""
        path = tmp_path / "kv.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            JsonFileKeyValueStore(path)


class TestCreateStore:
    """Tests for store URL resolution."""

    def test_empty_url_means_unconfigured(self):
        """No URL, no store."""
        assert create_store("") is None

    def test_memory_url(self):
        """memory:// gives a dict store."""
        assert isinstance(create_store("memory://"), InMemoryKeyValueStore)

    def test_file_url(self, tmp_path):
        """file:// gives a JSON file store."""
        store = create_store(f"file://{tmp_path / 'kv.json'}")
        assert isinstance(store, JsonFileKeyValueStore)

    def test_unknown_scheme(self):
        """Other schemes are rejected."""
        with pytest.raises(StorageError):
            create_store("redis://localhost:6379")

    def test_not_configured_error_is_configuration_error(self):
        """A missing store is reported as a setup problem."""
        assert issubclass(StoreNotConfiguredError, ConfigurationError)


class TestAuditStorage:
    """Tests for persisting audit events in the store."""

    def test_event_round_trip(self):
        """Events are stored under audit:<id>."""
        store = InMemoryKeyValueStore()
        storage = KeyValueAuditStorage(store, retention_seconds=3600)
        event = AuditEventBuilder.data_pulled("alice", found=True)

        async def scenario():
            logged = await AuditLogger(storage).log(event)
            return logged, await store.get(f"audit:{event.event_id}")

        logged, raw = asyncio.run(scenario())
        assert logged is True
        assert AuditEvent.model_validate_json(raw) == event

    def test_failing_sink_does_not_raise(self):
        """A broken audit store never breaks the caller."""
        class BrokenStorage(KeyValueAuditStorage):
            async def append_event(self, event):
                raise StorageError("disk full")

        logger = AuditLogger(BrokenStorage(InMemoryKeyValueStore(), 60))
        event = AuditEventBuilder.account_registered("alice")
        assert asyncio.run(logger.log(event)) is False

    def test_local_only_logger(self):
        """Without a sink, events only go to structlog and count as logged."""
        configure_logging()
        event = AuditEventBuilder.account_registered("alice")
        assert structlog.is_configured()
        assert asyncio.run(AuditLogger().log(event)) is True
