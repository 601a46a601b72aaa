"""
Frame Buffer
============

Async-safe bounded queue for pushed frames.

Sits between a push-based capture channel (video socket, stream consumer)
and the detector that pulls frames at its own pace.

Design Rules:
    - Fixed maximum size (drops oldest on overflow)
    - Async-safe for producer/consumer pattern
    - Exposes minimal metrics for observability
    - Does NOT decode or modify frames
"""

import asyncio
import logging
from typing import Optional

from flash_guard.stream.frame import EncodedFrame


logger = logging.getLogger(__name__)


class FrameBuffer:
    """
    Async-safe bounded queue for encoded frames.

    Uses a drop-oldest policy when the buffer is full so that a slow
    detector always analyzes the most recent frames.

    Example:
        buffer = FrameBuffer(maxsize=8)

        # Producer
        await buffer.put(frame)

        # Consumer
        frame = await buffer.get(timeout=1.0)
    """

    def __init__(self, maxsize: int = 8) -> None:
        """
        Initialize frame buffer.

        Args:
            maxsize: Maximum frames to buffer. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[EncodedFrame] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        """Maximum buffer size."""
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of frames in buffer."""
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        """Number of frames dropped due to overflow."""
        return self._dropped_count

    async def put(self, frame: EncodedFrame) -> bool:
        """
        Add frame to buffer, dropping oldest if full.

        Returns:
            True if frame was added without dropping,
            False if the oldest frame was dropped to make room.
        """
        self._total_put += 1
        dropped = False

        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._dropped_count += 1
                dropped = True
                logger.debug(
                    f"Buffer full, dropped oldest frame. "
                    f"Total dropped: {self._dropped_count}"
                )
            except asyncio.QueueEmpty:
                pass

        self._queue.put_nowait(frame)
        return not dropped

    async def get(self, timeout: Optional[float] = None) -> Optional[EncodedFrame]:
        """
        Get next frame from buffer.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next frame, or None if timeout occurred.
        """
        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    def clear(self) -> int:
        """
        Clear all frames from buffer.

        Returns:
            Number of frames cleared.
        """
        cleared = 0
        while True:
            try:
                self._queue.get_nowait()
                cleared += 1
            except asyncio.QueueEmpty:
                break
        return cleared

    def metrics(self) -> dict:
        """Get buffer metrics for observability."""
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
