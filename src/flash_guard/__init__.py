"""
FlashGuard
==========

Real-time photosensitive flash detection for video playback.

Frames of a playing video are reduced to a perceptual luminance signal and
a red-saturation signal. Flash events are counted over a sliding one-second
window; reaching three flashes per second (the WCAG 2.1 general and red
flash limit) pauses playback and raises a warning.

Components:
    - signals: Luminance/red analysis and the flash event tracker
    - detector: LangGraph-based per-video state machine
    - session: Video identity and the monitored/warned registry
    - stats: Single-writer cumulative counters
    - storage: Two-tier key-value persistence
    - stream: Frame sources, socket protocol dispatch, capture stream client

Example:
    from flash_guard.config import settings

    # The service is started via the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
