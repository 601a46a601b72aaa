"""
Frame Sources
=============

Sources of sequential video frames consumed by flash detectors.

A source plays the role of the video element: it exposes a refresh-aligned
``tick``, a ``capture`` of the current frame, the playback position and the
play/pause/ended lifecycle.

Implementations:
    - BufferedFrameSource: fed by pushed frames (video socket, stream consumer)
    - VideoFileSource: reads a local video file through OpenCV
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol, Union

import cv2
import numpy as np

from flash_guard.errors import FrameCaptureError
from flash_guard.stream.buffer import FrameBuffer
from flash_guard.stream.frame import EncodedFrame, FrameSample
from flash_guard.stream.image_decoder import bgr_to_sample, decode_frame


logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """
    Protocol for frame sources.

    ``tick`` resolves at most once per rendered frame and returns False once
    the source is closed. ``capture`` returns the frame of the latest tick
    and raises FrameCaptureError when no decodable frame is available.
    """

    @property
    def current_time(self) -> float: ...

    @property
    def paused(self) -> bool: ...

    @property
    def ended(self) -> bool: ...

    @property
    def ready(self) -> bool: ...

    async def tick(self) -> bool: ...

    def capture(self) -> FrameSample: ...

    def pause(self) -> None: ...

    def play(self) -> None: ...


class BufferedFrameSource:
    """
    Frame source fed by frames pushed from a remote capture client.

    Frames are held encoded in a drop-oldest FrameBuffer and decoded only
    when the detector actually analyzes them, so skipped frames cost nothing.

    Example:
        source = BufferedFrameSource(maxsize=8)
        await source.push(EncodedFrame(frame_id=0, timestamp_ms=0.0, image_b64=data))
    """

    def __init__(
        self,
        maxsize: int = 8,
        max_width: int = 640,
        max_height: int = 360,
        poll_timeout: float = 0.5,
    ) -> None:
        self.buffer = FrameBuffer(maxsize=maxsize)
        self.max_width = max_width
        self.max_height = max_height
        self._poll_timeout = poll_timeout

        self._pending: Optional[EncodedFrame] = None
        self._current_time: float = 0.0
        self._paused: bool = True
        self._ended: bool = False
        self._ready: bool = False
        self._closed: bool = False

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def closed(self) -> bool:
        return self._closed

    async def push(self, frame: EncodedFrame) -> None:
        """Queue a frame received from the capture client."""
        if self._closed:
            return
        self._ready = True
        await self.buffer.put(frame)

    async def tick(self) -> bool:
        """
        Wait for the next pushed frame.

        Returns early (True) without a frame when playback is paused or has
        ended so the detector can suspend itself. Returns False once closed.
        """
        while not self._closed:
            frame = await self.buffer.get(timeout=self._poll_timeout)
            if frame is not None:
                self._pending = frame
                if frame.media_time is not None:
                    self._current_time = frame.media_time
                return True
            if self._paused or self._ended:
                return True
        return False

    def capture(self) -> FrameSample:
        frame, self._pending = self._pending, None
        if frame is None:
            raise FrameCaptureError("No frame available")
        return decode_frame(frame, self.max_width, self.max_height)

    def pause(self) -> None:
        self._paused = True

    def play(self) -> None:
        self._paused = False
        self._ended = False

    # Lifecycle signals reported by the capture client

    def mark_ready(self, current_time: Optional[float] = None, paused: bool = True) -> None:
        self._ready = True
        self._paused = paused
        if current_time is not None:
            self._current_time = current_time

    def mark_playing(self, current_time: Optional[float] = None) -> None:
        if current_time is not None:
            self._current_time = current_time
        self.play()

    def mark_paused(self, current_time: Optional[float] = None) -> None:
        if current_time is not None:
            self._current_time = current_time
        self.pause()

    def mark_seeking(self, current_time: float) -> None:
        """Drop frames captured before the seek."""
        self._current_time = current_time
        self._pending = None
        self.buffer.clear()

    def mark_ended(self) -> None:
        self._ended = True
        self._paused = True

    def close(self) -> None:
        self._closed = True
        self._pending = None
        self.buffer.clear()


class VideoFileSource:
    """
    Frame source that plays a local video file through cv2.VideoCapture.

    Timestamps are media time derived from the frame index, so analysis of
    a file is deterministic regardless of wall-clock speed.

    Attributes:
        fps: Frame rate reported by the container (30 if unknown)
        realtime: Sleep one frame interval per tick when True
    """

    def __init__(
        self,
        path: Union[str, Path],
        realtime: bool = False,
        max_width: int = 640,
        max_height: int = 360,
    ) -> None:
        self.path = str(path)
        self.realtime = realtime
        self.max_width = max_width
        self.max_height = max_height

        self._capture = cv2.VideoCapture(self.path)
        if not self._capture.isOpened():
            raise FrameCaptureError(f"Cannot open video file: {self.path}")

        fps = self._capture.get(cv2.CAP_PROP_FPS)
        self.fps: float = fps if fps and fps > 0 else 30.0
        self.frame_count: int = int(self._capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)

        self._pending: Optional[np.ndarray] = None
        self._frame_index: int = 0
        self._paused: bool = True
        self._ended: bool = False
        self._closed: bool = False

        logger.info(
            f"VideoFileSource opened: {self.path} "
            f"({self.frame_count} frames @ {self.fps:.2f} fps)"
        )

    @property
    def current_time(self) -> float:
        return max(0, self._frame_index - 1) / self.fps

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def ready(self) -> bool:
        return not self._closed

    async def tick(self) -> bool:
        if self._closed:
            return False

        await asyncio.sleep(1.0 / self.fps if self.realtime else 0)

        ok, bgr = self._capture.read()
        if not ok:
            self._pending = None
            self._ended = True
            self._paused = True
            return True

        self._pending = bgr
        self._frame_index += 1
        return True

    def capture(self) -> FrameSample:
        bgr, self._pending = self._pending, None
        if bgr is None:
            raise FrameCaptureError("No frame available")
        timestamp_ms = (self._frame_index - 1) * 1000.0 / self.fps
        return bgr_to_sample(bgr, timestamp_ms, self.max_width, self.max_height)

    def pause(self) -> None:
        self._paused = True

    def play(self) -> None:
        if not self._ended:
            self._paused = False

    def seek(self, seconds: float) -> None:
        """Move the read position to the given media time."""
        index = max(0, int(seconds * self.fps))
        self._capture.set(cv2.CAP_PROP_POS_FRAMES, index)
        self._frame_index = index
        self._pending = None
        self._ended = False

    def close(self) -> None:
        self._closed = True
        self._capture.release()
