"""
Detector Module
===============

Per-video flash detection state machine.

    - transitions.py: Frame-driven transition policy
    - graph.py: LangGraph workflow (observe → evaluate) run per analyzed frame
    - detector.py: Scheduling and lifecycle events (play, pause, seek, ended)
    - sink.py: Pause/warning sinks

Key Design Decisions:
    - LangGraph is used for STRUCTURE, not LLM reasoning
    - All transitions are deterministic and inspectable
    - One sequential sampling task per detector
"""

from flash_guard.detector.detector import FlashDetector
from flash_guard.detector.graph import DetectorGraph
from flash_guard.detector.sink import LoggingWarningSink, QueueWarningSink, WarningSink
from flash_guard.detector.transitions import TransitionPolicy, TransitionResult

__all__ = [
    "FlashDetector",
    "DetectorGraph",
    "TransitionPolicy",
    "TransitionResult",
    "WarningSink",
    "QueueWarningSink",
    "LoggingWarningSink",
]
