"""
Stats Aggregator
================

Single-writer actor for the cumulative counters.

All updates go through one asyncio.Queue consumed by one worker task, so
concurrent increments from many detectors can never interleave their
read-modify-write cycles:

    caller --apply_update--> queue --> worker: read local
                                              apply delta
                                              write local
                                              write sync (best effort)
                                       --> caller's future resolved

A failed local write is reported to the caller. A failed sync write is
logged and not rolled back; local remains the source of truth for reads.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from flash_guard.errors import PersistenceError
from flash_guard.models.stats import STATS_KEY, CumulativeStats, StatName
from flash_guard.storage import StorageTier, TieredStorage


logger = logging.getLogger(__name__)


# (stat, delta); stat None means reset
_Update = Tuple[Optional[StatName], int]


class StatsAggregator:
    """
    Serializes counter updates through a single worker.

    Example:
        stats = StatsAggregator(storage)
        updated = await stats.apply_update(StatName.WARNINGS_ISSUED)
        print(updated.warnings_issued)
    """

    def __init__(self, storage: TieredStorage) -> None:
        self.storage = storage
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._updates_applied: int = 0
        self._sync_failures: int = 0

    # -------------------------------------------------------------------------
    # Worker lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker task. Called lazily by apply_update."""
        if self._worker is not None and not self._worker.done():
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="stats-aggregator")
        logger.debug("Stats aggregator worker started")

    async def stop(self) -> None:
        """Stop the worker. The in-flight update and queued updates are failed."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        if self._queue is not None:
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                if not future.done():
                    future.set_exception(RuntimeError("Stats aggregator stopped"))

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            update, future = await self._queue.get()
            try:
                result = await self._apply(update)
            except asyncio.CancelledError:
                if not future.done():
                    future.set_exception(RuntimeError("Stats aggregator stopped"))
                raise
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def apply_update(self, stat: StatName, delta: int = 1) -> CumulativeStats:
        """
        Apply a delta to one counter.

        Returns:
            The counters after this update.

        Raises:
            PersistenceError: If the local tier could not be written
        """
        return await self._submit((stat, delta))

    async def reset(self) -> CumulativeStats:
        """Zero all counters in both tiers."""
        return await self._submit((None, 0))

    async def snapshot(self) -> CumulativeStats:
        """Read the current counters without going through the queue."""
        return await self._read()

    async def _submit(self, update: _Update) -> CumulativeStats:
        self.start()
        assert self._queue is not None
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put((update, future))
        return await future

    async def _read(self) -> CumulativeStats:
        data = await self.storage.get([STATS_KEY], StorageTier.LOCAL)
        raw = data.get(STATS_KEY)
        if raw is None:
            data = await self.storage.get([STATS_KEY], StorageTier.SYNC)
            raw = data.get(STATS_KEY)
        if not isinstance(raw, dict):
            return CumulativeStats()
        try:
            return CumulativeStats.model_validate(raw)
        except ValueError as e:
            logger.error(f"Invalid persisted stats, starting from zero: {e}")
            return CumulativeStats()

    async def _apply(self, update: _Update) -> CumulativeStats:
        stat, delta = update
        if stat is None:
            stats = CumulativeStats()
        else:
            stats = (await self._read()).with_delta(stat, delta)

        payload = {STATS_KEY: stats.to_store()}
        await self.storage.set(payload, StorageTier.LOCAL)

        try:
            await self.storage.set(payload, StorageTier.SYNC)
        except PersistenceError as e:
            self._sync_failures += 1
            logger.error(f"Stats sync write failed, local kept: {e}")

        self._updates_applied += 1
        if stat is None:
            logger.info("Stats reset")
        else:
            logger.debug(f"Stats updated: {stat.value} {delta:+d}")
        return stats

    # -------------------------------------------------------------------------
    # Message handlers
    # -------------------------------------------------------------------------

    async def handle_message(self, message: Dict[str, Any]) -> dict:
        """
        Handle ``{"action": "updateStats", "stat": ..., "count": ...}``.

        Returns:
            {"success": bool, "stats": {...}} with the updated counters.
        """
        stat = StatName.parse(str(message.get("stat", "")))
        if stat is None:
            return {"success": False, "error": f"Unknown stat {message.get('stat')!r}"}

        try:
            delta = int(message.get("count", 1))
        except (TypeError, ValueError):
            return {"success": False, "error": f"Invalid count {message.get('count')!r}"}

        stats = await self.apply_update(stat, delta)
        return {"success": True, "stats": stats.to_store()}

    async def handle_get(self, message: Dict[str, Any]) -> dict:
        """Handle ``{"action": "getStats"}``."""
        stats = await self.snapshot()
        return {"success": True, "stats": stats.to_store()}

    def get_metrics(self) -> dict:
        return {
            "running": self.running,
            "queued_updates": self._queue.qsize() if self._queue is not None else 0,
            "updates_applied": self._updates_applied,
            "sync_failures": self._sync_failures,
        }
