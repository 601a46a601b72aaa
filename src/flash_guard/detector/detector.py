"""
Flash Detector
==============

Per-video detector: samples frames from a source, runs the detection graph
and applies the lifecycle events of the video.

Scheduling:
    One asyncio task per running detector. Each iteration awaits
    ``source.tick()`` (at most once per rendered frame), counts the frame
    and analyzes every Nth one. Analysis for a detector is therefore
    strictly sequential; the next frame is only awaited after the previous
    one was analyzed or skipped.

Events:
    play     -> resume sampling (re-arm warning near the start)
    pause    -> suspend sampling, keep all state
    seeking  -> reset detection state (re-arm warning near the start)
    ended    -> STOPPED
    dismiss  -> WARNED → MONITORING (continue playback or stay paused)
"""

import asyncio
import logging
from typing import Callable, Optional

from flash_guard.config import CaptureConfig, DetectionConfig, PolicyConfig
from flash_guard.detector.graph import DetectorGraph
from flash_guard.detector.sink import WarningSink
from flash_guard.detector.transitions import TransitionResult
from flash_guard.errors import FrameCaptureError
from flash_guard.models.analysis import AnalysisResult, ThresholdCrossing
from flash_guard.models.output import WarningPayload
from flash_guard.models.state import DetectorState
from flash_guard.signals.flash_tracker import FlashEventTracker
from flash_guard.signals.luminance import FrameAnalyzer
from flash_guard.stream.sources import FrameSource


logger = logging.getLogger(__name__)


OnWarning = Callable[["FlashDetector", WarningPayload], None]


class FlashDetector:
    """
    Flash detector bound to one video element.

    Attributes:
        handle: Identity of the video element (owned by the monitor)
        video_id: Logical video identifier used for session dedup
        source_key: Media source of the element when the detector was created
        source: Frame source being sampled
        sink: Destination for pause commands and warnings

    Example:
        detector = FlashDetector("tab1-video0", "dQw4w9WgXcQ", source, sink)
        detector.start()
        ...
        await detector.wait_idle()
    """

    def __init__(
        self,
        handle: str,
        video_id: str,
        source: FrameSource,
        sink: WarningSink,
        detection: Optional[DetectionConfig] = None,
        policy: Optional[PolicyConfig] = None,
        capture: Optional[CaptureConfig] = None,
        on_warning: Optional[OnWarning] = None,
        source_key: Optional[str] = None,
    ) -> None:
        self.handle = handle
        self.video_id = video_id
        self.source = source
        self.sink = sink
        self.source_key = source_key
        self.detection = detection or DetectionConfig()
        self.policy = policy or PolicyConfig()
        capture = capture or CaptureConfig()
        self._on_warning = on_warning

        self.analyzer = FrameAnalyzer(
            max_width=capture.max_width,
            max_height=capture.max_height,
            pixel_stride=self.detection.pixel_stride,
        )
        self.tracker = FlashEventTracker(
            luminance_threshold=self.detection.luminance_threshold,
            absolute_luminance_threshold=self.detection.absolute_luminance_threshold,
            relative_floor=self.detection.relative_floor,
            red_threshold=self.detection.red_threshold,
            flash_frequency=self.detection.flash_frequency,
            window_ms=self.detection.window_ms,
            min_brightness=self.detection.min_brightness,
            warmup_frames=self.detection.warmup_frames,
        )
        self.graph = DetectorGraph(self.tracker)

        self._running: bool = False
        self._task: Optional[asyncio.Task] = None
        self._frame_count: int = 0
        self._capture_error_logged: bool = False
        self._last_warning: Optional[WarningPayload] = None

    def __repr__(self) -> str:
        return (
            f"FlashDetector(handle={self.handle!r}, video_id={self.video_id!r}, "
            f"state={self.state.value})"
        )

    # -------------------------------------------------------------------------
    # State accessors
    # -------------------------------------------------------------------------

    @property
    def state(self) -> DetectorState:
        return self.graph.run_state.state

    @property
    def warning_shown(self) -> bool:
        return self.graph.run_state.warning_shown

    @property
    def running(self) -> bool:
        return self._running

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def analyzed_frame_count(self) -> int:
        return self.tracker.analyzed_frame_count

    @property
    def last_warning(self) -> Optional[WarningPayload]:
        return self._last_warning

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Begin (or resume) sampling frames. Must be called inside a running loop."""
        if self._running or self.state == DetectorState.STOPPED:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"detector-{self.handle}")
        logger.info(f"Started monitoring video {self.video_id} [{self.handle}]")

    def stop(self) -> None:
        """Stop sampling. Accumulated state is kept."""
        if not self._running and self._task is None:
            return

        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info(f"Stopped monitoring video {self.video_id} [{self.handle}]")

    async def wait_idle(self) -> None:
        """Wait until the sampling task has exited."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        me = _current_task()
        try:
            while self._running and self._task is me:
                if not await self.source.tick():
                    logger.info(f"Frame source closed [{self.handle}]")
                    break
                if self._task is not me:
                    break
                if self.source.ended:
                    self.finish()
                    break
                if self.source.paused:
                    break
                if not self.source.ready:
                    continue

                try:
                    self.step()
                except Exception as e:
                    logger.error(f"Frame analysis error [{self.handle}]: {e}")
        finally:
            if self._task is me:
                self._running = False
                self._task = None

    def step(self) -> Optional[TransitionResult]:
        """
        Handle one rendered frame.

        Returns:
            TransitionResult if the frame was analyzed, None if it was
            skipped or could not be captured.
        """
        self._frame_count += 1
        if self._frame_count % self.detection.analyze_every_n_frames != 0:
            return None

        try:
            sample = self.source.capture()
        except FrameCaptureError as e:
            if not self._capture_error_logged:
                self._capture_error_logged = True
                logger.warning(
                    f"Cannot capture frames for video {self.video_id} "
                    f"[{self.handle}], skipping: {e}"
                )
            return None

        analysis = self.analyzer.analyze(sample)
        if analysis is None:
            return None

        return self.process_analysis(sample.timestamp_ms, analysis)

    def process_analysis(self, timestamp_ms: float, analysis: AnalysisResult) -> TransitionResult:
        """Run the detection graph on one analyzed frame and apply side effects."""
        result = self.graph.process(timestamp_ms, analysis)

        if result.transition_occurred:
            logger.info(
                f"Detector [{self.handle}]: {result.previous_state.value} → "
                f"{result.new_state.value}"
            )

        if result.warned and result.crossing is not None:
            self._trigger_warning(result.crossing)

        return result

    def _trigger_warning(self, crossing: ThresholdCrossing) -> None:
        self.source.pause()
        self.sink.pause_now(self.handle)

        payload = WarningPayload(
            type=crossing.kind,
            flash_count=crossing.count,
            peak_flashes_per_window=self.tracker.max_flashes_per_window,
            cumulative_flashes=self.tracker.total_flashes,
            timestamp_seconds=self.source.current_time,
        )
        self._last_warning = payload

        logger.warning(
            f"THRESHOLD EXCEEDED [{self.handle}]: {crossing.kind.value} "
            f"flashes in window={crossing.count}, total={self.tracker.total_flashes}"
        )

        self.sink.show_warning(self.handle, payload)
        if self._on_warning is not None:
            self._on_warning(self, payload)

    # -------------------------------------------------------------------------
    # Lifecycle events
    # -------------------------------------------------------------------------

    def play(self) -> None:
        """
        Video started playing.

        Playing from near the start clears the detection window and re-arms
        the warning, so earlier flashes cannot trigger it again.
        """
        if self.state == DetectorState.STOPPED:
            return

        if self.source.current_time < self.policy.play_rearm_seconds:
            logger.info(f"Playing from the beginning [{self.handle}], re-arming warning")
            self.tracker.reset()
            self._rearm()
            self.graph.set_state(DetectorState.WARMING_UP)
        elif self.state == DetectorState.WARNED:
            self.graph.set_state(DetectorState.MONITORING)

        self.start()

    def pause(self) -> None:
        """Video paused: suspend sampling, keep state."""
        self.stop()

    def seek(self, position_seconds: float) -> None:
        """
        Video is seeking.

        Always clears the detection window so discontinuous frames cannot
        produce flashes. Seeking near the start also re-arms the warning.
        """
        if self.state == DetectorState.STOPPED:
            return

        self.tracker.reset()
        if position_seconds < self.policy.seek_rearm_seconds:
            logger.info(
                f"Seeking to early part of video ({position_seconds:.1f}s) "
                f"[{self.handle}], re-arming warning"
            )
            self._rearm()

        self.graph.set_state(DetectorState.WARMING_UP)

    def dismiss(self, continue_playback: bool) -> None:
        """
        User dismissed the warning.

        Args:
            continue_playback: True to resume playback with a fresh warning
                eligibility; False to keep the video paused.
        """
        if self.state == DetectorState.STOPPED:
            return

        self.sink.hide_warning(self.handle)

        if continue_playback:
            self.tracker.reset()
            self.graph.update_run_state(
                state=DetectorState.MONITORING,
                warning_shown=False,
                state_entered_at_ms=None,
            )
            self.source.play()
            self.sink.resume_now(self.handle)
            self.start()
        else:
            if self.state == DetectorState.WARNED:
                self.graph.set_state(DetectorState.MONITORING)
            self.source.pause()
            self.sink.pause_now(self.handle)
            self.stop()

    def finish(self) -> None:
        """Video ended: terminal state."""
        self.stop()
        self.graph.set_state(DetectorState.STOPPED)
        logger.info(
            f"Video ended [{self.handle}]: total_flashes={self.tracker.total_flashes}, "
            f"peak={self.tracker.max_flashes_per_window}"
        )

    def _rearm(self) -> None:
        self.graph.update_run_state(warning_shown=False)
        self.tracker.reset_run_counters()

    def get_metrics(self) -> dict:
        """Get detector metrics for observability."""
        return {
            "handle": self.handle,
            "video_id": self.video_id,
            "state": self.state.value,
            "running": self._running,
            "warning_shown": self.warning_shown,
            "frame_count": self._frame_count,
            **self.tracker.get_metrics(),
        }


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
