"""
Session Registry Tests
======================

Tests for dedup, persistence round-trip and the loaded gate.
"""

import asyncio

import pytest

from flash_guard.errors import PersistenceError
from flash_guard.session import MONITORED_KEY, WARNED_KEY, SessionRegistry
from flash_guard.storage import MemoryStore, StorageTier, TieredStorage


class BrokenStore(MemoryStore):
    async def set(self, items):
        raise PersistenceError("disk full")


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    @pytest.mark.asyncio
    async def test_register_if_new_is_idempotent(self, memory_storage):
        registry = SessionRegistry(memory_storage)
        await registry.load()

        assert await registry.register_if_new("abc") is True
        assert await registry.register_if_new("abc") is False
        assert registry.monitored_ids() == ["abc"]

    @pytest.mark.asyncio
    async def test_concurrent_registration_counts_once(self, memory_storage):
        registry = SessionRegistry(memory_storage)
        await registry.load()

        results = await asyncio.gather(*(registry.register_if_new("abc") for _ in range(10)))

        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_persisted_before_returning(self, memory_storage):
        registry = SessionRegistry(memory_storage)
        await registry.load()

        await registry.register_if_new("abc")

        data = await memory_storage.get([MONITORED_KEY], StorageTier.LOCAL)
        assert data[MONITORED_KEY] == ["abc"]

    @pytest.mark.asyncio
    async def test_round_trip_through_files(self, tmp_path):
        first = SessionRegistry(TieredStorage.from_directory(tmp_path))
        await first.load()
        await first.register_if_new("v1")
        await first.register_if_new("v2")
        await first.mark_warned("v2")

        second = SessionRegistry(TieredStorage.from_directory(tmp_path))
        await second.load()

        assert second.monitored_ids() == ["v1", "v2"]
        assert second.warned_ids() == ["v2"]
        assert second.is_registered("v1")
        assert second.was_warned("v2")
        assert not second.was_warned("v1")
        assert await second.register_if_new("v1") is False

    @pytest.mark.asyncio
    async def test_clear(self, memory_storage):
        registry = SessionRegistry(memory_storage)
        await registry.load()
        await registry.register_if_new("abc")
        await registry.mark_warned("abc")

        await registry.clear()

        assert registry.monitored_ids() == []
        assert registry.warned_ids() == []
        data = await memory_storage.get([MONITORED_KEY, WARNED_KEY])
        assert data == {MONITORED_KEY: [], WARNED_KEY: []}
        assert await registry.register_if_new("abc") is True

    @pytest.mark.asyncio
    async def test_failed_write_does_not_register(self):
        storage = TieredStorage(BrokenStore(), MemoryStore(), max_retries=0)
        registry = SessionRegistry(storage)
        await registry.load()

        with pytest.raises(PersistenceError):
            await registry.register_if_new("abc")
        assert not registry.is_registered("abc")

    @pytest.mark.asyncio
    async def test_wait_loaded_blocks_until_load(self, memory_storage):
        await memory_storage.set({MONITORED_KEY: ["old"]})
        registry = SessionRegistry(memory_storage)

        waiter = asyncio.create_task(registry.wait_loaded())
        await asyncio.sleep(0)
        assert not waiter.done()
        assert not registry.loaded

        await registry.load()
        await asyncio.wait_for(waiter, timeout=1.0)
        assert registry.is_registered("old")

    @pytest.mark.asyncio
    async def test_ignores_malformed_persisted_values(self, memory_storage):
        await memory_storage.set({MONITORED_KEY: "not-a-list", WARNED_KEY: ["ok", 3]})
        registry = SessionRegistry(memory_storage)
        await registry.load()
        assert registry.monitored_ids() == []
        assert registry.warned_ids() == ["ok"]
