"""
Detection Graph Definition
==========================

LangGraph workflow evaluated once per analyzed frame.

LangGraph is used for CONTROL FLOW only:

    START → observe → evaluate → END

    observe:  feeds the frame signals into the FlashEventTracker
    evaluate: applies the TransitionPolicy to the tracker output

The tracker is owned by the graph object (it keeps deques that are not
meant to be copied per frame); the run state travels through the graph
and is replaced on every invocation.
"""

import logging
from typing import Any, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from flash_guard.detector.transitions import TransitionPolicy, TransitionResult
from flash_guard.models.analysis import AnalysisResult, FlashObservation
from flash_guard.models.state import DetectorRunState, DetectorState
from flash_guard.signals.flash_tracker import FlashEventTracker


logger = logging.getLogger(__name__)


class DetectorGraphState(TypedDict):
    """
    State passed through the detection graph.

    Attributes:
        run_state: Run-scoped detector state, carried across frames
        timestamp_ms: Timestamp of the current frame
        analysis: Signals of the current frame
        observation: Tracker output for the current frame
        result: Transition result for the current frame
    """
    run_state: DetectorRunState
    timestamp_ms: float
    analysis: Optional[AnalysisResult]
    observation: Optional[FlashObservation]
    result: Optional[TransitionResult]


def create_initial_state() -> DetectorGraphState:
    """Create initial graph state."""
    return {
        "run_state": DetectorRunState(),
        "timestamp_ms": 0.0,
        "analysis": None,
        "observation": None,
        "result": None,
    }


class DetectorGraph:
    """
    Compiled per-frame detection workflow for one video.

    No learning, no prediction: every transition follows from the
    tracker output and the run state.
    """

    def __init__(
        self,
        tracker: FlashEventTracker,
        policy: Optional[TransitionPolicy] = None,
    ) -> None:
        self.tracker = tracker
        self.policy = policy or TransitionPolicy()

        self._graph = self._build_graph()
        self._state: DetectorGraphState = create_initial_state()

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(DetectorGraphState)

        workflow.add_node("observe", self._observe_node)
        workflow.add_node("evaluate", self._evaluate_node)

        workflow.set_entry_point("observe")
        workflow.add_edge("observe", "evaluate")
        workflow.add_edge("evaluate", END)

        return workflow.compile()

    def _observe_node(self, state: DetectorGraphState) -> Dict[str, Any]:
        """Record the frame in the flash tracker."""
        observation = self.tracker.observe(state["timestamp_ms"], state["analysis"])
        return {"observation": observation}

    def _evaluate_node(self, state: DetectorGraphState) -> Dict[str, Any]:
        """Apply the transition policy to the tracker output."""
        new_run_state, result = self.policy.evaluate(
            state["run_state"], state["observation"]
        )
        return {"run_state": new_run_state, "result": result}

    def process(self, timestamp_ms: float, analysis: AnalysisResult) -> TransitionResult:
        """
        Evaluate one analyzed frame.

        Args:
            timestamp_ms: Frame timestamp in milliseconds
            analysis: Frame signals

        Returns:
            TransitionResult for the frame
        """
        self._state["timestamp_ms"] = timestamp_ms
        self._state["analysis"] = analysis

        self._state = self._graph.invoke(self._state)

        return self._state["result"]

    @property
    def run_state(self) -> DetectorRunState:
        return self._state["run_state"]

    @property
    def last_observation(self) -> Optional[FlashObservation]:
        return self._state.get("observation")

    def update_run_state(self, **updates: Any) -> DetectorRunState:
        """Apply an event-driven change (seek, dismiss, ended) to the run state."""
        self._state["run_state"] = self._state["run_state"].model_copy(update=updates)
        return self._state["run_state"]

    def set_state(self, state: DetectorState, timestamp_ms: Optional[float] = None) -> None:
        """Move to a lifecycle state outside of frame evaluation."""
        self.update_run_state(state=state, state_entered_at_ms=timestamp_ms)

    def reset(self) -> None:
        """Reset graph and tracker to initial state."""
        self.tracker.reset()
        self.tracker.reset_run_counters()
        self._state = create_initial_state()
        logger.info("DetectorGraph reset")
