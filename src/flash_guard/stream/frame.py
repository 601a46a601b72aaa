"""
Frame Data Model
================

Internal frame representations for the capture pipeline.

    - EncodedFrame: a frame as received over the wire (not decoded)
    - FrameSample: a decoded, resolution-capped RGBA bitmap

Design Rules:
    - FrameSample is the ONLY frame format passed to the analyzer
    - Both types are immutable and never persisted
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True, slots=True)
class EncodedFrame:
    """
    Frame as pushed by a remote capture source.

    Attributes:
        frame_id: Frame counter from the source (-1 when not provided)
        timestamp_ms: Capture timestamp in milliseconds
        image_b64: Base64-encoded JPEG/PNG data (NOT decoded)
        media_time: Playback position in seconds when captured, if known
    """

    frame_id: int
    timestamp_ms: float
    image_b64: str
    media_time: Optional[float] = None

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"EncodedFrame(frame_id={self.frame_id}, "
            f"timestamp_ms={self.timestamp_ms:.1f})"
        )


@dataclass(frozen=True, slots=True)
class FrameSample:
    """
    Decoded frame ready for analysis.

    Attributes:
        timestamp_ms: Capture timestamp in milliseconds
        width: Pixel width of ``pixels``
        height: Pixel height of ``pixels``
        pixels: RGBA bitmap, shape (height, width, 4), dtype uint8
    """

    timestamp_ms: float
    width: int
    height: int
    pixels: np.ndarray

    @classmethod
    def from_pixels(cls, pixels: np.ndarray, timestamp_ms: float) -> "FrameSample":
        """Build a sample whose dimensions are read from the bitmap."""
        height, width = pixels.shape[:2] if pixels.ndim >= 2 else (0, 0)
        return cls(
            timestamp_ms=timestamp_ms,
            width=int(width),
            height=int(height),
            pixels=pixels,
        )

    def __repr__(self) -> str:
        return (
            f"FrameSample(timestamp_ms={self.timestamp_ms:.1f}, "
            f"size={self.width}x{self.height})"
        )
