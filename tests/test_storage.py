"""
Storage Tests
=============

Tests for the key-value stores and the tiered persistence channel.
"""

import json

import pytest

from flash_guard.errors import PersistenceError
from flash_guard.storage import JsonFileStore, MemoryStore, StorageTier, TieredStorage


class FailingStore(MemoryStore):
    """MemoryStore whose first ``failures`` writes raise."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def set(self, items):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise PersistenceError("quota exceeded")
        await super().set(items)


class TestJsonFileStore:
    """Tests for the file-backed store."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        store = JsonFileStore(tmp_path / "local.json")
        await store.set({"visitedVideos": ["a", "b"], "enabled": True})

        assert await store.get(["visitedVideos", "missing"]) == {"visitedVideos": ["a", "b"]}
        on_disk = json.loads((tmp_path / "local.json").read_text())
        assert on_disk["enabled"] is True

    @pytest.mark.asyncio
    async def test_set_merges_keys(self, tmp_path):
        store = JsonFileStore(tmp_path / "nested" / "sync.json")
        await store.set({"a": 1})
        await store.set({"b": 2})
        assert await store.get(["a", "b"]) == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        assert await JsonFileStore(tmp_path / "none.json").get(["a"]) == {}

    @pytest.mark.asyncio
    async def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text("{not json")
        assert await JsonFileStore(path).get(["a"]) == {}


class TestTieredStorage:
    """Tests for retries, degraded mode and change listeners."""

    @pytest.mark.asyncio
    async def test_tiers_are_independent(self, memory_storage):
        await memory_storage.set({"stats": {"warningsIssued": 1}}, StorageTier.LOCAL)
        assert await memory_storage.get(["stats"], StorageTier.SYNC) == {}
        assert await memory_storage.get(["stats"]) == {"stats": {"warningsIssued": 1}}

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        sync = FailingStore(failures=2)
        storage = TieredStorage(MemoryStore(), sync, max_retries=3, retry_backoff_ms=1)

        await storage.set({"enabled": False}, StorageTier.SYNC)

        assert sync.attempts == 3
        assert not storage.degraded
        assert await storage.get(["enabled"], StorageTier.SYNC) == {"enabled": False}

    @pytest.mark.asyncio
    async def test_retries_exhausted_marks_degraded(self):
        storage = TieredStorage(MemoryStore(), FailingStore(failures=100), max_retries=2, retry_backoff_ms=1)

        with pytest.raises(PersistenceError):
            await storage.set({"enabled": False}, StorageTier.SYNC)

        assert storage.degraded
        assert storage.is_degraded(StorageTier.SYNC)
        assert not storage.is_degraded(StorageTier.LOCAL)
        assert storage.metrics()["write_failures"] == 3

    @pytest.mark.asyncio
    async def test_recovers_after_degraded(self):
        sync = FailingStore(failures=3)
        storage = TieredStorage(MemoryStore(), sync, max_retries=2, retry_backoff_ms=1)

        with pytest.raises(PersistenceError):
            await storage.set({"a": 1}, StorageTier.SYNC)
        await storage.set({"a": 2}, StorageTier.SYNC)

        assert not storage.degraded

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, memory_storage):
        changes = []
        unsubscribe = memory_storage.subscribe(lambda items, tier: changes.append((items, tier)))

        await memory_storage.set({"a": 1}, StorageTier.LOCAL)
        unsubscribe()
        await memory_storage.set({"a": 2}, StorageTier.LOCAL)

        assert changes == [({"a": 1}, StorageTier.LOCAL)]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_write(self, memory_storage):
        def broken(items, tier):
            raise RuntimeError("listener bug")

        memory_storage.subscribe(broken)
        await memory_storage.set({"a": 1})
        assert await memory_storage.get(["a"]) == {"a": 1}

    @pytest.mark.asyncio
    async def test_memory_store_copies_values(self):
        store = MemoryStore()
        value = ["a"]
        await store.set({"ids": value})
        value.append("b")
        assert await store.get(["ids"]) == {"ids": ["a"]}

    @pytest.mark.asyncio
    async def test_from_directory(self, tmp_path):
        storage = TieredStorage.from_directory(tmp_path)
        await storage.set({"a": 1}, StorageTier.LOCAL)
        await storage.set({"b": 2}, StorageTier.SYNC)
        assert (tmp_path / "local.json").exists()
        assert (tmp_path / "sync.json").exists()
