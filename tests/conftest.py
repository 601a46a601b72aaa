"""
Test Configuration
==================

Pytest fixtures and test configuration for FlashGuard.
"""

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from flash_guard.config import DetectionConfig, PolicyConfig
from flash_guard.errors import FrameCaptureError
from flash_guard.stream.frame import FrameSample


class ScriptedFrameSource:
    """
    FrameSource that replays a fixed list of samples.

    ``None`` entries simulate frames that cannot be captured. The source
    ends after the last entry.
    """

    def __init__(self, samples: List[Optional[FrameSample]], paused: bool = False) -> None:
        self.samples = list(samples)
        self.current_time: float = 0.0
        self.paused = paused
        self.ended = False
        self.ready = True
        self.pause_calls = 0
        self._index = 0
        self._pending: Optional[FrameSample] = None

    async def tick(self) -> bool:
        await asyncio.sleep(0)
        if self._index >= len(self.samples):
            self.ended = True
            return True
        self._pending = self.samples[self._index]
        self._index += 1
        if self._pending is not None:
            self.current_time = self._pending.timestamp_ms / 1000.0
        return True

    def capture(self) -> FrameSample:
        if self._pending is None:
            raise FrameCaptureError("cross-origin frame")
        return self._pending

    def pause(self) -> None:
        self.paused = True
        self.pause_calls += 1

    def play(self) -> None:
        self.paused = False


def solid_frame(rgb, timestamp_ms: float, width: int = 64, height: int = 36) -> FrameSample:
    """Uniform RGBA frame of one color."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :, 0] = rgb[0]
    pixels[:, :, 1] = rgb[1]
    pixels[:, :, 2] = rgb[2]
    pixels[:, :, 3] = 255
    return FrameSample.from_pixels(pixels, timestamp_ms)


WHITE = (255, 255, 255)
GRAY = (128, 128, 128)
BLACK = (0, 0, 0)
RED = (255, 0, 0)


@pytest.fixture
def fast_detection():
    """Detection settings without warm-up that analyze every frame."""
    return DetectionConfig(warmup_frames=0, analyze_every_n_frames=1)


@pytest.fixture
def policy():
    """Default re-arm policy."""
    return PolicyConfig()


@pytest.fixture
def make_source():
    """Factory for scripted frame sources."""
    return ScriptedFrameSource


@pytest.fixture
def flashing_frames():
    """White/gray alternation every 100ms: a general flash on every frame after the first."""
    return [solid_frame(WHITE if i % 2 == 0 else GRAY, i * 100.0) for i in range(10)]


@pytest.fixture
def frame_factory():
    """Factory for uniform frames."""
    return solid_frame


@pytest.fixture
def memory_storage():
    """Two in-memory tiers with instant retries."""
    from flash_guard.storage import MemoryStore, TieredStorage

    return TieredStorage(MemoryStore(), MemoryStore(), max_retries=2, retry_backoff_ms=1)


@pytest.fixture
def sample_video_message():
    """Provide a sample attach message for testing."""
    return {
        "type": "attach",
        "page_url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "source_url": "blob:https://www.youtube.com/abc",
        "current_time": 0.0,
        "paused": False,
    }
