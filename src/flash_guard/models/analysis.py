"""
Analysis Models
===============

Data models passed between the analyzer, the flash tracker and the detector.

These are plain frozen dataclasses: they are produced once per analyzed
frame and never mutated afterwards.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FlashKind(str, Enum):
    """Kind of flash event."""

    GENERAL = "general"
    RED = "red"


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """
    Per-frame perceptual signals.

    Attributes:
        luminance: Mean relative luminance of the sampled pixels, in [0, 1]
        red_saturation: Fraction of sampled pixels that are saturated red, in [0, 1]
    """

    luminance: float
    red_saturation: float

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not 0.0 <= self.luminance <= 1.0:
            raise ValueError("luminance must be in [0, 1]")
        if not 0.0 <= self.red_saturation <= 1.0:
            raise ValueError("red_saturation must be in [0, 1]")


@dataclass(frozen=True, slots=True)
class FlashEvent:
    """A frame-to-frame change that exceeded a flash threshold."""

    timestamp_ms: float
    kind: FlashKind


@dataclass(frozen=True, slots=True)
class ThresholdCrossing:
    """Flash frequency reached the warning threshold within the window."""

    kind: FlashKind
    count: int


@dataclass(frozen=True, slots=True)
class FlashObservation:
    """
    Outcome of feeding one analysis into the flash tracker.

    Attributes:
        timestamp_ms: Timestamp of the analyzed frame
        analysis: Signals of the analyzed frame
        warming_up: True if the frame fell inside the warm-up period
        general_flash: True if a general flash was recorded for this frame
        red_flash: True if a red flash was recorded for this frame
        general_count: General flashes currently inside the window
        red_count: Red flashes currently inside the window
        crossing: Set when either count reached the frequency threshold
    """

    timestamp_ms: float
    analysis: AnalysisResult
    warming_up: bool = False
    general_flash: bool = False
    red_flash: bool = False
    general_count: int = 0
    red_count: int = 0
    crossing: Optional[ThresholdCrossing] = None
