"""
Signals Module
==============

Signal processing for flash detection.

    - FrameAnalyzer: bitmap -> (luminance, red saturation)
    - FlashEventTracker: signals -> flash events and sliding-window frequency
"""

from flash_guard.signals.luminance import FrameAnalyzer
from flash_guard.signals.flash_tracker import FlashEventTracker

__all__ = ["FrameAnalyzer", "FlashEventTracker"]
