"""
Persistence Channel
===================

Key-value storage with two independent tiers:

    - local: fast, per-device store (read path for counters and sets)
    - sync:  slower store replicated across devices

Writes go through TieredStorage, which retries with exponential backoff,
marks a tier as degraded when retries are exhausted and notifies change
listeners so observers (e.g. the stats socket) can reflect updates made
elsewhere in the process.

Stores:
    - MemoryStore: in-process dict (tests, scan script)
    - JsonFileStore: one JSON document per tier on disk
"""

import asyncio
import copy
import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Union

from flash_guard.errors import PersistenceError


logger = logging.getLogger(__name__)


ChangeListener = Callable[[Dict[str, Any], "StorageTier"], None]


class StorageTier(str, Enum):
    """Storage tiers of the persistence channel."""

    LOCAL = "local"
    SYNC = "sync"


class KeyValueStore(Protocol):
    """Protocol for a single storage tier."""

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]: ...

    async def set(self, items: Dict[str, Any]) -> None: ...


class MemoryStore:
    """In-memory key-value store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    async def set(self, items: Dict[str, Any]) -> None:
        self._data.update(copy.deepcopy(items))

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStore:
    """
    Key-value store backed by a single JSON file.

    The whole document is rewritten atomically (temp file + rename) on
    every set. File I/O runs in a worker thread.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        return {k: data[k] for k in keys if k in data}

    async def set(self, items: Dict[str, Any]) -> None:
        async with self._lock:
            try:
                await asyncio.to_thread(self._update, items)
            except OSError as e:
                raise PersistenceError(f"Write to {self.path} failed: {e}")

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt store file {self.path}, treating as empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _update(self, items: Dict[str, Any]) -> None:
        data = self._read()
        data.update(items)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)


class TieredStorage:
    """
    Two-tier persistence channel with retries and change notification.

    Attributes:
        local: Fast local tier
        sync: Cross-device synchronized tier
        max_retries: Retries per write before giving up
        retry_backoff_ms: Initial backoff, doubled per retry

    Example:
        storage = TieredStorage(MemoryStore(), MemoryStore())
        await storage.set({"enabled": True}, StorageTier.SYNC)
        data = await storage.get(["enabled"], StorageTier.SYNC)
    """

    def __init__(
        self,
        local: KeyValueStore,
        sync: KeyValueStore,
        max_retries: int = 3,
        retry_backoff_ms: int = 100,
    ) -> None:
        self.local = local
        self.sync = sync
        self.max_retries = max_retries
        self.retry_backoff_ms = retry_backoff_ms

        self._listeners: List[ChangeListener] = []
        self._degraded: Dict[StorageTier, bool] = {
            StorageTier.LOCAL: False,
            StorageTier.SYNC: False,
        }
        self._write_failures: int = 0

    @classmethod
    def from_directory(
        cls,
        directory: Union[str, Path],
        max_retries: int = 3,
        retry_backoff_ms: int = 100,
    ) -> "TieredStorage":
        """Create file-backed local and sync tiers in a directory."""
        directory = Path(directory)
        return cls(
            JsonFileStore(directory / "local.json"),
            JsonFileStore(directory / "sync.json"),
            max_retries=max_retries,
            retry_backoff_ms=retry_backoff_ms,
        )

    def _tier(self, tier: StorageTier) -> KeyValueStore:
        return self.local if tier == StorageTier.LOCAL else self.sync

    @property
    def degraded(self) -> bool:
        """True if any tier exhausted its retries on the last write."""
        return any(self._degraded.values())

    def is_degraded(self, tier: StorageTier) -> bool:
        return self._degraded[tier]

    async def get(
        self,
        keys: Iterable[str],
        tier: StorageTier = StorageTier.LOCAL,
    ) -> Dict[str, Any]:
        """Read keys from a tier. Missing keys are absent from the result."""
        return await self._tier(tier).get(list(keys))

    async def set(
        self,
        items: Dict[str, Any],
        tier: StorageTier = StorageTier.LOCAL,
    ) -> None:
        """
        Write items to a tier, retrying with exponential backoff.

        Raises:
            PersistenceError: If every attempt failed
        """
        store = self._tier(tier)
        backoff = self.retry_backoff_ms / 1000.0
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                await store.set(items)
                break
            except (PersistenceError, OSError) as e:
                last_error = e
                self._write_failures += 1
                if attempt < self.max_retries:
                    logger.warning(
                        f"Write to {tier.value} tier failed (attempt {attempt + 1}), "
                        f"retrying in {backoff:.2f}s: {e}"
                    )
                    await asyncio.sleep(backoff)
                    backoff *= 2
        else:
            if not self._degraded[tier]:
                logger.error(f"Storage tier {tier.value} degraded: {last_error}")
            self._degraded[tier] = True
            raise PersistenceError(f"Write to {tier.value} tier failed: {last_error}")

        if self._degraded[tier]:
            logger.info(f"Storage tier {tier.value} recovered")
        self._degraded[tier] = False
        self._notify(items, tier)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            Callable that unsubscribes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, items: Dict[str, Any], tier: StorageTier) -> None:
        for listener in list(self._listeners):
            try:
                listener(copy.deepcopy(items), tier)
            except Exception as e:
                logger.error(f"Storage change listener failed: {e}")

    def metrics(self) -> dict:
        return {
            "degraded": self.degraded,
            "local_degraded": self._degraded[StorageTier.LOCAL],
            "sync_degraded": self._degraded[StorageTier.SYNC],
            "write_failures": self._write_failures,
        }
