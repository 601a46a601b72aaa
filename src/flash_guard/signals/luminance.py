"""
Luminance & Saturation Analyzer
===============================

Converts an RGBA bitmap into the two scalar signals used for flash detection.

Relative luminance (WCAG 2.1):
    c      = channel / 255
    linear = c / 12.92                     if c <= 0.03928
           = ((c + 0.055) / 1.055) ^ 2.4   otherwise
    L      = 0.2126 R + 0.7152 G + 0.0722 B

Saturated red:
    fraction of sampled pixels with R > 200, G < 100, B < 100

Both signals are averaged over every Nth pixel (default 4) of a frame
capped to 640x360, which bounds the cost per call.
"""

import logging
from typing import Optional

import numpy as np

from flash_guard.models.analysis import AnalysisResult
from flash_guard.stream.frame import FrameSample
from flash_guard.stream.image_decoder import cap_resolution, to_rgba


logger = logging.getLogger(__name__)


LUMINANCE_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)


def srgb_to_linear(channels: np.ndarray) -> np.ndarray:
    """Apply the piecewise sRGB transfer function to values in [0, 1]."""
    return np.where(
        channels <= 0.03928,
        channels / 12.92,
        np.power((channels + 0.055) / 1.055, 2.4),
    )


def relative_luminance(rgb: np.ndarray) -> float:
    """
    Mean relative luminance of an (N, 3) array of 0-255 RGB values.

    Returns:
        Luminance in [0, 1]; 0.0 for an empty array.
    """
    if rgb.shape[0] == 0:
        return 0.0
    linear = srgb_to_linear(rgb.astype(np.float64) / 255.0)
    return float(np.clip((linear @ LUMINANCE_WEIGHTS).mean(), 0.0, 1.0))


def red_saturation_ratio(
    rgb: np.ndarray,
    red_min: int = 200,
    green_max: int = 100,
    blue_max: int = 100,
) -> float:
    """Fraction of (N, 3) RGB pixels classified as saturated red."""
    if rgb.shape[0] == 0:
        return 0.0
    mask = (rgb[:, 0] > red_min) & (rgb[:, 1] < green_max) & (rgb[:, 2] < blue_max)
    return float(mask.mean())


class FrameAnalyzer:
    """
    Deterministic per-frame signal extraction.

    Attributes:
        max_width: Width cap applied before sampling
        max_height: Height cap applied before sampling
        pixel_stride: Sample every Nth pixel

    Example:
        analyzer = FrameAnalyzer()
        result = analyzer.analyze(sample)
        if result is not None:
            print(result.luminance, result.red_saturation)
    """

    def __init__(
        self,
        max_width: int = 640,
        max_height: int = 360,
        pixel_stride: int = 4,
        red_min: int = 200,
        green_max: int = 100,
        blue_max: int = 100,
    ) -> None:
        if max_width < 1 or max_height < 1:
            raise ValueError("resolution cap must be positive")
        if pixel_stride < 1:
            raise ValueError("pixel_stride must be >= 1")

        self.max_width = max_width
        self.max_height = max_height
        self.pixel_stride = pixel_stride
        self.red_min = red_min
        self.green_max = green_max
        self.blue_max = blue_max

    def sample_pixels(self, pixels: np.ndarray) -> Optional[np.ndarray]:
        """
        Coerce, cap and subsample a bitmap.

        Returns:
            (N, 3) uint8 RGB array of sampled pixels, or None if the bitmap
            has no usable pixels.
        """
        rgba = to_rgba(pixels)
        if rgba is None:
            return None
        rgba = cap_resolution(rgba, self.max_width, self.max_height)
        return rgba.reshape(-1, 4)[:: self.pixel_stride, :3]

    def analyze(self, sample: FrameSample) -> Optional[AnalysisResult]:
        """
        Compute luminance and red saturation for a frame.

        Never raises on malformed input; returns None for frames with
        no pixels so the caller can skip them.
        """
        rgb = self.sample_pixels(sample.pixels)
        if rgb is None or rgb.shape[0] == 0:
            logger.debug(f"Skipping frame without pixels: {sample!r}")
            return None

        return AnalysisResult(
            luminance=relative_luminance(rgb),
            red_saturation=red_saturation_ratio(
                rgb, self.red_min, self.green_max, self.blue_max
            ),
        )
