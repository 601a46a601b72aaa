"""
Stream Module
=============

Frame ingestion for FlashGuard:
    - EncodedFrame / FrameSample: encoded and decoded frame models
    - FrameBuffer: Async-safe bounded queue (drops oldest on overflow)
    - BufferedFrameSource / VideoFileSource: FrameSource implementations
    - VideoEventDispatcher: video socket protocol → monitor events
    - VideoStreamConsumer: WebSocket client with validation and reconnection

Example:
    from flash_guard.stream import VideoStreamConsumer

    consumer = VideoStreamConsumer(
        url="ws://localhost:8000/ws/capture",
        monitor=monitor,
    )
    task = asyncio.create_task(consumer.run())
"""

from flash_guard.stream.buffer import FrameBuffer
from flash_guard.stream.consumer import VideoStreamConsumer, VideoStreamConsumerMetrics
from flash_guard.stream.dispatcher import VideoEventDispatcher
from flash_guard.stream.frame import EncodedFrame, FrameSample
from flash_guard.stream.sources import BufferedFrameSource, FrameSource, VideoFileSource


__all__ = [
    "EncodedFrame",
    "FrameSample",
    "FrameBuffer",
    "FrameSource",
    "BufferedFrameSource",
    "VideoFileSource",
    "VideoEventDispatcher",
    "VideoStreamConsumer",
    "VideoStreamConsumerMetrics",
]
