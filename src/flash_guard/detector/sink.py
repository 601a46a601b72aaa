"""
Pause / Warning Sinks
=====================

Destinations for the commands and warnings a detector emits.

Implementations:
    - QueueWarningSink: buffers outbound socket messages for a video session
    - LoggingWarningSink: records and logs warnings (scan script, tests)
"""

import asyncio
import logging
from typing import List, Protocol, Tuple

from flash_guard.models.output import WarningPayload


logger = logging.getLogger(__name__)


class WarningSink(Protocol):
    """Protocol for pause/warning sinks. Calls must not block."""

    def pause_now(self, handle: str) -> None: ...

    def resume_now(self, handle: str) -> None: ...

    def show_warning(self, handle: str, payload: WarningPayload) -> None: ...

    def hide_warning(self, handle: str) -> None: ...


class QueueWarningSink:
    """
    Sink that turns detector output into outbound socket messages.

    Messages are queued and drained by the connection writer so that
    detectors never await network I/O.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[dict] = asyncio.Queue()

    def pause_now(self, handle: str) -> None:
        self._queue.put_nowait({"command": "pause", "handle": handle})

    def resume_now(self, handle: str) -> None:
        self._queue.put_nowait({"command": "play", "handle": handle})

    def show_warning(self, handle: str, payload: WarningPayload) -> None:
        self._queue.put_nowait({
            "event": "warning",
            "handle": handle,
            "payload": payload.to_message(),
        })

    def hide_warning(self, handle: str) -> None:
        self._queue.put_nowait({"event": "hideWarning", "handle": handle})

    async def get(self) -> dict:
        """Wait for the next outbound message."""
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


class LoggingWarningSink:
    """Sink that logs warnings and keeps them for later inspection."""

    def __init__(self) -> None:
        self.warnings: List[Tuple[str, WarningPayload]] = []
        self.commands: List[Tuple[str, str]] = []
        self.visible: bool = False

    def pause_now(self, handle: str) -> None:
        self.commands.append(("pause", handle))

    def resume_now(self, handle: str) -> None:
        self.commands.append(("play", handle))

    def show_warning(self, handle: str, payload: WarningPayload) -> None:
        self.warnings.append((handle, payload))
        self.visible = True
        logger.warning(
            f"Photosensitive warning [{handle}]: {payload.type.value} "
            f"{payload.flash_count} flashes/window at {payload.timestamp_seconds:.1f}s"
        )

    def hide_warning(self, handle: str) -> None:
        self.visible = False
