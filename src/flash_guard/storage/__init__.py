"""
Storage Module
==============

Two-tier key-value persistence channel (local + sync) with change listeners.
"""

from flash_guard.storage.store import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    StorageTier,
    TieredStorage,
)

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "StorageTier",
    "TieredStorage",
]
