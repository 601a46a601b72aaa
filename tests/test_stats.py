"""
Stats Aggregator Tests
======================

Tests for serialized counter updates.
"""

import asyncio

import pytest

from flash_guard.errors import PersistenceError
from flash_guard.models.stats import STATS_KEY, CumulativeStats, StatName
from flash_guard.stats import StatsAggregator
from flash_guard.storage import MemoryStore, StorageTier, TieredStorage


class BrokenStore(MemoryStore):
    async def set(self, items):
        raise PersistenceError("sync quota exceeded")


class StalledStore(MemoryStore):
    """Local tier whose writes never complete."""

    def __init__(self):
        super().__init__()
        self.writing = asyncio.Event()

    async def set(self, items):
        self.writing.set()
        await asyncio.Event().wait()


class TestCumulativeStats:
    """Tests for the counter model."""

    def test_store_shape(self):
        stats = CumulativeStats(videos_monitored=2)
        assert stats.to_store() == {
            "videosMonitored": 2,
            "warningsIssued": 0,
            "flashesDetected": 0,
        }

    def test_delta_floors_at_zero(self):
        stats = CumulativeStats().with_delta(StatName.WARNINGS_ISSUED, -5)
        assert stats.warnings_issued == 0

    def test_parse_accepts_singular_names(self):
        assert StatName.parse("videoMonitored") == StatName.VIDEOS_MONITORED
        assert StatName.parse("warningIssued") == StatName.WARNINGS_ISSUED
        assert StatName.parse("flashDetected") == StatName.FLASHES_DETECTED
        assert StatName.parse("flashesDetected") == StatName.FLASHES_DETECTED
        assert StatName.parse("bogus") is None


class TestStatsAggregator:
    """Tests for StatsAggregator."""

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, memory_storage):
        await memory_storage.set({STATS_KEY: {"flashesDetected": 7}})
        stats = StatsAggregator(memory_storage)

        await asyncio.gather(*(stats.apply_update(StatName.FLASHES_DETECTED, 1) for _ in range(100)))

        snapshot = await stats.snapshot()
        assert snapshot.flashes_detected == 107
        synced = await memory_storage.get([STATS_KEY], StorageTier.SYNC)
        assert synced[STATS_KEY]["flashesDetected"] == 107
        await stats.stop()

    @pytest.mark.asyncio
    async def test_returns_updated_counters(self, memory_storage):
        stats = StatsAggregator(memory_storage)
        result = await stats.apply_update(StatName.VIDEOS_MONITORED)
        assert result.videos_monitored == 1
        await stats.stop()

    @pytest.mark.asyncio
    async def test_sync_failure_not_rolled_back(self):
        storage = TieredStorage(MemoryStore(), BrokenStore(), max_retries=1, retry_backoff_ms=1)
        stats = StatsAggregator(storage)

        result = await stats.apply_update(StatName.WARNINGS_ISSUED)

        assert result.warnings_issued == 1
        assert (await stats.snapshot()).warnings_issued == 1
        assert storage.is_degraded(StorageTier.SYNC)
        assert stats.get_metrics()["sync_failures"] == 1
        await stats.stop()

    @pytest.mark.asyncio
    async def test_local_failure_reported_to_caller(self):
        storage = TieredStorage(BrokenStore(), MemoryStore(), max_retries=0)
        stats = StatsAggregator(storage)

        with pytest.raises(PersistenceError):
            await stats.apply_update(StatName.WARNINGS_ISSUED)

        # Worker survives the failure
        assert stats.running
        await stats.stop()

    @pytest.mark.asyncio
    async def test_reads_fall_back_to_sync(self, memory_storage):
        await memory_storage.set({STATS_KEY: {"warningsIssued": 4}}, StorageTier.SYNC)
        stats = StatsAggregator(memory_storage)
        assert (await stats.snapshot()).warnings_issued == 4

    @pytest.mark.asyncio
    async def test_reset(self, memory_storage):
        stats = StatsAggregator(memory_storage)
        await stats.apply_update(StatName.FLASHES_DETECTED, 12)

        result = await stats.reset()

        assert result == CumulativeStats()
        for tier in (StorageTier.LOCAL, StorageTier.SYNC):
            data = await memory_storage.get([STATS_KEY], tier)
            assert data[STATS_KEY] == CumulativeStats().to_store()
        await stats.stop()

    @pytest.mark.asyncio
    async def test_handle_message_with_singular_name(self, memory_storage):
        stats = StatsAggregator(memory_storage)

        response = await stats.handle_message(
            {"action": "updateStats", "stat": "flashDetected", "count": 5}
        )

        assert response["success"] is True
        assert response["stats"]["flashesDetected"] == 5
        await stats.stop()

    @pytest.mark.asyncio
    async def test_handle_message_unknown_stat(self, memory_storage):
        stats = StatsAggregator(memory_storage)
        response = await stats.handle_message({"action": "updateStats", "stat": "likes"})
        assert response["success"] is False

    @pytest.mark.asyncio
    async def test_stop_ends_worker(self, memory_storage):
        stats = StatsAggregator(memory_storage)
        await stats.apply_update(StatName.VIDEOS_MONITORED)
        await stats.stop()
        assert not stats.running

    @pytest.mark.asyncio
    async def test_stop_fails_update_in_flight(self):
        local = StalledStore()
        stats = StatsAggregator(TieredStorage(local, MemoryStore()))
        pending = asyncio.create_task(stats.apply_update(StatName.WARNINGS_ISSUED))
        await asyncio.wait_for(local.writing.wait(), timeout=1.0)

        await stats.stop()

        with pytest.raises(RuntimeError):
            await asyncio.wait_for(pending, timeout=1.0)
        assert not stats.running
