"""
Video Event Dispatcher
======================

Translates the video socket protocol into frame-source signals and monitor
events for one video element.

Each socket session (server endpoint or remote stream consumer) owns one
dispatcher, which in turn owns the element's BufferedFrameSource and the
QueueWarningSink its detector writes to.

A frame's timestamp_ms (capture clock) drives the flash window; its
current_time (media time, defaulting to timestamp_ms / 1000) becomes the
playback position once the frame is ticked.

    attach   -> source ready, monitor.attach (creates / reuses detector)
    frame    -> source.push (decoded lazily by the detector)
    play     -> source playing, monitor.on_play
    pause    -> source paused, monitor.on_pause
    seeking  -> buffered frames dropped, monitor.on_seeking
    ended    -> monitor.on_ended
    dismiss  -> monitor.dismiss
"""

import logging
from typing import TYPE_CHECKING, Optional

from flash_guard.detector.sink import QueueWarningSink
from flash_guard.models.input import VideoMessage
from flash_guard.stream.frame import EncodedFrame
from flash_guard.stream.sources import BufferedFrameSource

if TYPE_CHECKING:
    from flash_guard.monitor import VideoMonitor


logger = logging.getLogger(__name__)


class VideoEventDispatcher:
    """
    Per-element protocol adapter.

    Example:
        dispatcher = VideoEventDispatcher(monitor, handle="ws-1")
        await dispatcher.dispatch(VideoMessage.model_validate_json(raw))
        outbound = await dispatcher.sink.get()
    """

    def __init__(
        self,
        monitor: "VideoMonitor",
        handle: str,
        maxsize: int = 8,
        max_width: int = 640,
        max_height: int = 360,
    ) -> None:
        self.monitor = monitor
        self.handle = handle
        self.source = BufferedFrameSource(
            maxsize=maxsize,
            max_width=max_width,
            max_height=max_height,
        )
        self.sink = QueueWarningSink()
        self._frames_pushed: int = 0
        self._last_frame_id: Optional[int] = None

    async def dispatch(self, message: VideoMessage) -> None:
        """Apply one inbound message."""
        if message.type == "attach":
            self.source.mark_ready(message.current_time, paused=message.paused)
            await self.monitor.attach(
                self.handle,
                self.source,
                self.sink,
                page_url=message.page_url,
                video_id=message.video_id,
                source_url=message.source_url,
            )

        elif message.type == "frame":
            frame_id = message.frame_id
            if frame_id is None:
                frame_id = 0 if self._last_frame_id is None else self._last_frame_id + 1
            self._last_frame_id = frame_id
            media_time = message.current_time
            if media_time is None:
                media_time = message.timestamp_ms / 1000.0
            frame = EncodedFrame(
                frame_id=frame_id,
                timestamp_ms=message.timestamp_ms,
                image_b64=message.image,
                media_time=media_time,
            )
            await self.source.push(frame)
            self._frames_pushed += 1

        elif message.type == "play":
            self.source.mark_playing(message.current_time)
            self.monitor.on_play(self.handle)

        elif message.type == "pause":
            self.source.mark_paused(message.current_time)
            self.monitor.on_pause(self.handle)

        elif message.type == "seeking":
            position = message.current_time if message.current_time is not None else 0.0
            self.source.mark_seeking(position)
            self.monitor.on_seeking(self.handle, position)

        elif message.type == "ended":
            self.source.mark_ended()
            self.monitor.on_ended(self.handle)

        elif message.type == "dismiss":
            self.monitor.dismiss(self.handle, message.continue_playback)

    def close(self) -> None:
        """Detach the element and release its frame source."""
        self.monitor.detach(self.handle)
        self.source.close()
        logger.info(f"Video session closed [{self.handle}]: {self._frames_pushed} frames received")

    def metrics(self) -> dict:
        return {
            "handle": self.handle,
            "frames_pushed": self._frames_pushed,
            "outbound_pending": self.sink.pending(),
            **self.source.buffer.metrics(),
        }
