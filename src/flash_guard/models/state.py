"""
Detector State Models
=====================

This module defines the state representation for a per-video flash detector.

States:
    IDLE        -> no frame analyzed yet
    WARMING_UP  -> collecting warm-up frames after start or seek
    MONITORING  -> actively evaluating flash frequency
    WARNED      -> threshold crossed, playback paused, warning displayed
    STOPPED     -> video ended, detector may be discarded

Transitions:
    IDLE → WARMING_UP:        first valid frame once the source is ready
    WARMING_UP → MONITORING:  warm-up frame count elapsed
    MONITORING → WARNED:      threshold crossed and no warning shown yet
    WARNED → MONITORING:      user dismisses the warning (continue or pause)
    any → WARMING_UP:         seek
    any → STOPPED:            ended
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DetectorState(str, Enum):
    """
    Discrete lifecycle states for a flash detector.

    Attributes:
        IDLE: No frames analyzed yet
        WARMING_UP: Warm-up frames are seeding the previous observation
        MONITORING: Flash frequency is being evaluated
        WARNED: A warning was issued and playback paused
        STOPPED: Terminal state after the video ended
    """

    IDLE = "IDLE"
    WARMING_UP = "WARMING_UP"
    MONITORING = "MONITORING"
    WARNED = "WARNED"
    STOPPED = "STOPPED"


class DetectorRunState(BaseModel):
    """
    Run-scoped state of a detector.

    This model is carried through the detection graph and replaced
    (never mutated) on every evaluated frame.

    Attributes:
        state: Current lifecycle state
        warning_shown: Whether a warning was issued in this monitoring run
        frames_evaluated: Frames evaluated by the graph since creation
        state_entered_at_ms: Frame timestamp when the current state was entered
    """

    model_config = ConfigDict(use_enum_values=False)

    state: DetectorState = Field(
        default=DetectorState.IDLE,
        description="Current lifecycle state",
    )

    warning_shown: bool = Field(
        default=False,
        description="Whether a warning was issued in this monitoring run",
    )

    frames_evaluated: int = Field(
        default=0,
        ge=0,
        description="Frames evaluated by the graph since creation",
    )

    state_entered_at_ms: Optional[float] = Field(
        default=None,
        description="Frame timestamp when the current state was entered",
    )
