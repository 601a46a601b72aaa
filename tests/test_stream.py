"""
Stream Tests
============

Tests for the frame buffer, frame sources, protocol dispatch and message
validation of the capture stream consumer.
"""

import asyncio

import cv2
import numpy as np
import pytest

from flash_guard.errors import FrameCaptureError
from flash_guard.models.input import VideoMessage
from flash_guard.stream import (
    BufferedFrameSource,
    EncodedFrame,
    FrameBuffer,
    VideoEventDispatcher,
    VideoFileSource,
    VideoStreamConsumer,
)
from flash_guard.stream.image_decoder import encode_image_b64


def png_frame(frame_id: int, value: int = 255, media_time=None) -> EncodedFrame:
    rgba = np.full((18, 32, 4), value, dtype=np.uint8)
    return EncodedFrame(
        frame_id=frame_id,
        timestamp_ms=frame_id * 33.0,
        image_b64=encode_image_b64(rgba),
        media_time=media_time,
    )


class RecordingMonitor:
    """Stands in for VideoMonitor and records the events it receives."""

    def __init__(self):
        self.events = []

    async def attach(self, handle, source, sink, page_url=None, video_id=None, source_url=None):
        self.events.append(("attach", handle, page_url, source_url))

    def on_play(self, handle):
        self.events.append(("play", handle))

    def on_pause(self, handle):
        self.events.append(("pause", handle))

    def on_seeking(self, handle, position):
        self.events.append(("seeking", handle, position))

    def on_ended(self, handle):
        self.events.append(("ended", handle))

    def dismiss(self, handle, continue_playback):
        self.events.append(("dismiss", handle, continue_playback))

    def detach(self, handle):
        self.events.append(("detach", handle))


class TestFrameBuffer:
    """Tests for the drop-oldest buffer."""

    @pytest.mark.asyncio
    async def test_drops_oldest_when_full(self):
        buffer = FrameBuffer(maxsize=2)
        assert await buffer.put(EncodedFrame(0, 0.0, "a"))
        assert await buffer.put(EncodedFrame(1, 1.0, "b"))
        assert not await buffer.put(EncodedFrame(2, 2.0, "c"))

        assert buffer.dropped_count == 1
        assert (await buffer.get()).frame_id == 1
        assert (await buffer.get()).frame_id == 2

    @pytest.mark.asyncio
    async def test_get_timeout(self):
        assert await FrameBuffer().get(timeout=0.01) is None

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            FrameBuffer(maxsize=0)


class TestBufferedFrameSource:
    """Tests for the pushed-frame source."""

    @pytest.mark.asyncio
    async def test_tick_then_capture(self):
        source = BufferedFrameSource(poll_timeout=0.01)
        source.mark_playing(0.0)
        await source.push(png_frame(3, media_time=0.1))

        assert await source.tick()
        sample = source.capture()

        assert sample.timestamp_ms == 99.0
        assert (sample.width, sample.height) == (32, 18)
        assert source.current_time == 0.1

    def test_capture_without_frame_raises(self):
        with pytest.raises(FrameCaptureError):
            BufferedFrameSource().capture()

    @pytest.mark.asyncio
    async def test_tick_returns_when_paused(self):
        source = BufferedFrameSource(poll_timeout=0.01)
        source.mark_ready(paused=True)
        assert await source.tick()
        assert source.paused

    @pytest.mark.asyncio
    async def test_tick_false_after_close(self):
        source = BufferedFrameSource(poll_timeout=0.01)
        source.mark_playing()
        source.close()
        assert await source.tick() is False

    @pytest.mark.asyncio
    async def test_seek_drops_buffered_frames(self):
        source = BufferedFrameSource()
        await source.push(png_frame(0))
        await source.push(png_frame(1))

        source.mark_seeking(42.0)

        assert source.buffer.size == 0
        assert source.current_time == 42.0

    @pytest.mark.asyncio
    async def test_undecodable_frame_is_capture_error(self):
        source = BufferedFrameSource(poll_timeout=0.01)
        source.mark_playing()
        await source.push(EncodedFrame(0, 0.0, "aGVsbG8="))
        await source.tick()
        with pytest.raises(FrameCaptureError):
            source.capture()


class TestVideoEventDispatcher:
    """Tests for protocol → monitor dispatch."""

    @pytest.mark.asyncio
    async def test_lifecycle_messages(self):
        monitor = RecordingMonitor()
        dispatcher = VideoEventDispatcher(monitor, handle="ws-1")

        messages = [
            {"type": "attach", "page_url": "https://www.youtube.com/watch?v=a", "source_url": "blob:1", "paused": True},
            {"type": "play", "current_time": 1.0},
            {"type": "pause", "current_time": 2.0},
            {"type": "seeking", "current_time": 4.0},
            {"type": "dismiss", "continue_playback": True},
            {"type": "ended"},
        ]
        for message in messages:
            await dispatcher.dispatch(VideoMessage.model_validate(message))
        dispatcher.close()

        assert monitor.events == [
            ("attach", "ws-1", "https://www.youtube.com/watch?v=a", "blob:1"),
            ("play", "ws-1"),
            ("pause", "ws-1"),
            ("seeking", "ws-1", 4.0),
            ("dismiss", "ws-1", True),
            ("ended", "ws-1"),
            ("detach", "ws-1"),
        ]
        assert dispatcher.source.ended
        assert dispatcher.source.closed

    @pytest.mark.asyncio
    async def test_frames_are_buffered_with_media_time(self):
        dispatcher = VideoEventDispatcher(RecordingMonitor(), handle="ws-1")
        image = png_frame(0).image_b64

        await dispatcher.dispatch(VideoMessage(type="frame", timestamp_ms=500.0, image=image))
        await dispatcher.dispatch(VideoMessage(type="frame", timestamp_ms=533.0, image=image))

        assert dispatcher.metrics()["frames_pushed"] == 2
        first = await dispatcher.source.buffer.get()
        second = await dispatcher.source.buffer.get()
        assert (first.frame_id, second.frame_id) == (0, 1)
        assert first.media_time == 0.5

    @pytest.mark.asyncio
    async def test_capture_clock_and_media_time_kept_apart(self):
        dispatcher = VideoEventDispatcher(RecordingMonitor(), handle="ws-1")
        source = dispatcher.source
        source.mark_playing(0.0)
        image = png_frame(0).image_b64

        await dispatcher.dispatch(
            VideoMessage(type="frame", timestamp_ms=5000.0, current_time=0.3, image=image)
        )
        assert await source.tick()
        sample = source.capture()

        assert sample.timestamp_ms == 5000.0
        assert source.current_time == 0.3


class TestVideoMessage:
    """Tests for inbound message validation."""

    def test_frame_requires_image(self):
        with pytest.raises(ValueError):
            VideoMessage.model_validate({"type": "frame", "timestamp_ms": 1.0})

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            VideoMessage.model_validate({"type": "rewind"})

    def test_attach_parses(self, sample_video_message):
        message = VideoMessage.model_validate(sample_video_message)
        assert message.paused is False
        assert message.source_url.startswith("blob:")


class TestVideoStreamConsumer:
    """Tests for consumer-side validation (no network)."""

    def test_parse_counts_errors(self):
        consumer = VideoStreamConsumer("ws://localhost:1/ws", monitor=RecordingMonitor())
        assert consumer._parse_and_validate("{not json") is None
        assert consumer._parse_and_validate('{"type": "frame"}') is None
        assert consumer.metrics.parse_errors == 2

    def test_timestamp_going_backwards_warns(self):
        consumer = VideoStreamConsumer("ws://localhost:1/ws", monitor=RecordingMonitor())
        consumer._parse_and_validate('{"type": "frame", "timestamp_ms": 100, "image": "x"}')
        consumer._parse_and_validate('{"type": "frame", "timestamp_ms": 50, "image": "x"}')
        assert consumer.metrics.validation_warnings == 1
        assert consumer.metrics.frames_received == 2

    def test_seek_resets_ordering(self):
        consumer = VideoStreamConsumer("ws://localhost:1/ws", monitor=RecordingMonitor())
        consumer._parse_and_validate('{"type": "frame", "timestamp_ms": 100, "image": "x"}')
        consumer._parse_and_validate('{"type": "seeking", "current_time": 0}')
        consumer._parse_and_validate('{"type": "frame", "timestamp_ms": 0, "image": "x"}')
        assert consumer.metrics.validation_warnings == 0

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        consumer = VideoStreamConsumer(
            "ws://127.0.0.1:9/ws",
            monitor=RecordingMonitor(),
            reconnect_backoff_ms=1,
            max_reconnect_attempts=1,
        )
        await asyncio.wait_for(consumer.run(), timeout=10.0)
        assert consumer.metrics.reconnect_count == 1
        assert not consumer.connected


class TestVideoFileSource:
    """Tests for the OpenCV file source."""

    @pytest.fixture
    def video_path(self, tmp_path):
        path = tmp_path / "clip.avi"
        writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 36))
        if not writer.isOpened():
            pytest.skip("MJPG writer unavailable in this OpenCV build")
        for i in range(5):
            writer.write(np.full((36, 64, 3), 255 if i % 2 == 0 else 0, dtype=np.uint8))
        writer.release()
        return path

    @pytest.mark.asyncio
    async def test_reads_until_end(self, video_path):
        source = VideoFileSource(video_path)
        source.play()
        timestamps = []
        while await source.tick() and not source.ended:
            timestamps.append(source.capture().timestamp_ms)
        source.close()

        assert timestamps == [0.0, 100.0, 200.0, 300.0, 400.0]
        assert source.paused

    def test_missing_file(self, tmp_path):
        with pytest.raises(FrameCaptureError):
            VideoFileSource(tmp_path / "missing.mp4")
