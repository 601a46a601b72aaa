"""
State Transition Logic
======================

Deterministic per-frame transition policy for a flash detector.

Frame-driven transitions (evaluated here):
    IDLE → WARMING_UP:        any analyzed frame
    WARMING_UP → MONITORING:  first frame past the warm-up period
    MONITORING → WARNED:      threshold crossed AND warning not yet shown

Event-driven transitions (seek, dismiss, ended) are applied by the
detector itself; this policy only ever sees analyzed frames.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from flash_guard.models.analysis import FlashObservation, ThresholdCrossing
from flash_guard.models.state import DetectorRunState, DetectorState


logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Result of evaluating one frame."""

    previous_state: DetectorState
    new_state: DetectorState
    transition_occurred: bool
    crossing: Optional[ThresholdCrossing] = None

    @property
    def warned(self) -> bool:
        """True when this frame moved the detector into WARNED."""
        return self.transition_occurred and self.new_state == DetectorState.WARNED

    def __repr__(self) -> str:
        return (
            f"TransitionResult({self.previous_state.value} → {self.new_state.value}, "
            f"changed={self.transition_occurred})"
        )


class TransitionPolicy:
    """
    Frame-driven transition policy.

    A crossing only warns while MONITORING: frames in WARMING_UP never
    carry a crossing, and a WARNED detector stays WARNED until the user
    dismisses the warning.
    """

    def evaluate(
        self,
        run_state: DetectorRunState,
        observation: FlashObservation,
    ) -> Tuple[DetectorRunState, TransitionResult]:
        """
        Evaluate the policy for one analyzed frame.

        Args:
            run_state: Current run state
            observation: Tracker output for the frame

        Returns:
            Tuple of (updated_run_state, transition_result)
        """
        current = run_state.state
        target = current
        crossing: Optional[ThresholdCrossing] = None

        if target == DetectorState.IDLE:
            target = DetectorState.WARMING_UP

        if target == DetectorState.WARMING_UP and not observation.warming_up:
            target = DetectorState.MONITORING

        if (
            target == DetectorState.MONITORING
            and observation.crossing is not None
            and not run_state.warning_shown
        ):
            target = DetectorState.WARNED
            crossing = observation.crossing

        changed = target != current
        updates = {"frames_evaluated": run_state.frames_evaluated + 1}
        if changed:
            updates["state"] = target
            updates["state_entered_at_ms"] = observation.timestamp_ms
        if target == DetectorState.WARNED and crossing is not None:
            updates["warning_shown"] = True

        new_state = run_state.model_copy(update=updates)

        return new_state, TransitionResult(
            previous_state=current,
            new_state=target,
            transition_occurred=changed,
            crossing=crossing,
        )
