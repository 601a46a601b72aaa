"""
Data Models
===========

Models for FlashGuard.

Models:
    Analysis:
        - AnalysisResult: Per-frame luminance and red saturation
        - FlashEvent, FlashKind: Flash events kept in the sliding window
        - FlashObservation, ThresholdCrossing: Tracker output

    State:
        - DetectorState: Detector lifecycle enum
        - DetectorRunState: Run-scoped detector state

    Stats:
        - StatName, CumulativeStats: Process-wide counters

    Messages:
        - VideoMessage, ControlMessage: Inbound messages
        - WarningPayload: Outbound warning
"""

from flash_guard.models.analysis import (
    AnalysisResult,
    FlashEvent,
    FlashKind,
    FlashObservation,
    ThresholdCrossing,
)
from flash_guard.models.state import DetectorRunState, DetectorState
from flash_guard.models.stats import CumulativeStats, StatName
from flash_guard.models.input import ControlMessage, VideoMessage
from flash_guard.models.output import WarningPayload

__all__ = [
    # Analysis
    "AnalysisResult",
    "FlashEvent",
    "FlashKind",
    "FlashObservation",
    "ThresholdCrossing",
    # State
    "DetectorState",
    "DetectorRunState",
    # Stats
    "StatName",
    "CumulativeStats",
    # Messages
    "VideoMessage",
    "ControlMessage",
    "WarningPayload",
]
