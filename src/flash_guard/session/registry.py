"""
Session Registry
================

Durable dedup sets of video IDs:

    - monitored: videos that have been counted in ``videosMonitored``
    - warned:    videos that have triggered a warning

Both sets live in the local storage tier under ``visitedVideos`` and
``warnedVideos`` (JSON arrays). Mutations are serialized by an asyncio
lock and persisted before the in-memory set changes, so a failed write
never leaves a video counted but unrecorded.

Callers that create detectors must ``await registry.wait_loaded()`` first;
until ``load()`` completes the sets are empty and dedup would be wrong.
"""

import asyncio
import logging
from typing import Iterable, List, Set

from flash_guard.storage import StorageTier, TieredStorage


logger = logging.getLogger(__name__)


MONITORED_KEY = "visitedVideos"
WARNED_KEY = "warnedVideos"


class SessionRegistry:
    """
    Persistent sets of monitored and warned video IDs.

    Example:
        registry = SessionRegistry(storage)
        await registry.load()
        if await registry.register_if_new("dQw4w9WgXcQ"):
            channel.fire_and_forget({"action": "updateStats", ...})
    """

    def __init__(self, storage: TieredStorage) -> None:
        self.storage = storage
        self._monitored: Set[str] = set()
        self._warned: Set[str] = set()
        self._lock = asyncio.Lock()
        self._loaded = asyncio.Event()

    @property
    def loaded(self) -> bool:
        return self._loaded.is_set()

    async def load(self) -> None:
        """Read the persisted sets and open the loaded gate."""
        async with self._lock:
            data = await self.storage.get([MONITORED_KEY, WARNED_KEY], StorageTier.LOCAL)
            self._monitored = set(_as_id_list(data.get(MONITORED_KEY)))
            self._warned = set(_as_id_list(data.get(WARNED_KEY)))
        self._loaded.set()
        logger.info(
            f"Session registry loaded: {len(self._monitored)} monitored, "
            f"{len(self._warned)} warned"
        )

    async def wait_loaded(self) -> None:
        await self._loaded.wait()

    async def register_if_new(self, video_id: str) -> bool:
        """
        Record a video as monitored.

        Returns:
            True if the video was not registered before. The new set has
            already been persisted when True is returned.

        Raises:
            PersistenceError: If the set could not be written
        """
        return await self._add(video_id, self._monitored, MONITORED_KEY)

    async def mark_warned(self, video_id: str) -> bool:
        """Record a video as warned. Same contract as register_if_new."""
        return await self._add(video_id, self._warned, WARNED_KEY)

    async def _add(self, video_id: str, ids: Set[str], key: str) -> bool:
        async with self._lock:
            if video_id in ids:
                return False
            updated = sorted(ids | {video_id})
            await self.storage.set({key: updated}, StorageTier.LOCAL)
            ids.add(video_id)
            return True

    def is_registered(self, video_id: str) -> bool:
        return video_id in self._monitored

    def was_warned(self, video_id: str) -> bool:
        return video_id in self._warned

    def monitored_ids(self) -> List[str]:
        return sorted(self._monitored)

    def warned_ids(self) -> List[str]:
        return sorted(self._warned)

    async def clear(self) -> None:
        """Empty both sets and their persisted form."""
        async with self._lock:
            await self.storage.set({MONITORED_KEY: [], WARNED_KEY: []}, StorageTier.LOCAL)
            self._monitored.clear()
            self._warned.clear()
        logger.info("Session registry cleared")


def _as_id_list(value: object) -> Iterable[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]
