"""
Flash Event Tracker
===================

Turns a sequence of per-frame signals into flash events and maintains the
flash frequency over a sliding time window.

Per observation:
    1. Warm-up: the first N analyzed frames only seed the previous signal
    2. Dark floor: no flash if either frame is at or below min_brightness
    3. General flash: relative change > luminance_threshold
                      AND absolute change > absolute_luminance_threshold
    4. Red flash: change in red saturation > red_threshold
    5. Evict events older than window_ms, then record new events
    6. Crossing: general count >= frequency, else red count >= frequency

The double luminance condition suppresses flicker in dim scenes, where a
small absolute change can be a large relative one.
"""

import logging
from collections import deque
from typing import Deque, List, Optional

from flash_guard.models.analysis import (
    AnalysisResult,
    FlashEvent,
    FlashKind,
    FlashObservation,
    ThresholdCrossing,
)


logger = logging.getLogger(__name__)


class FlashEventTracker:
    """
    Sliding-window flash counter for a single video.

    Attributes:
        window_ms: Detection window in milliseconds
        flash_frequency: Window count that triggers a crossing
        warmup_frames: Analyzed frames excluded from evaluation

    Example:
        tracker = FlashEventTracker()
        for ts, analysis in observations:
            obs = tracker.observe(ts, analysis)
            if obs.crossing:
                print(obs.crossing.kind, obs.crossing.count)
    """

    def __init__(
        self,
        luminance_threshold: float = 0.2,
        absolute_luminance_threshold: float = 0.1,
        relative_floor: float = 0.01,
        red_threshold: float = 0.8,
        flash_frequency: int = 3,
        window_ms: float = 1000.0,
        min_brightness: float = 0.05,
        warmup_frames: int = 10,
        log_every_n_frames: int = 30,
    ) -> None:
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if flash_frequency < 1:
            raise ValueError("flash_frequency must be >= 1")
        if warmup_frames < 0:
            raise ValueError("warmup_frames must be >= 0")

        self.luminance_threshold = luminance_threshold
        self.absolute_luminance_threshold = absolute_luminance_threshold
        self.relative_floor = relative_floor
        self.red_threshold = red_threshold
        self.flash_frequency = flash_frequency
        self.window_ms = window_ms
        self.min_brightness = min_brightness
        self.warmup_frames = warmup_frames
        self.log_every_n_frames = log_every_n_frames

        # Detection state (cleared on seek / dismiss)
        self._previous: Optional[AnalysisResult] = None
        self._general: Deque[FlashEvent] = deque()
        self._red: Deque[FlashEvent] = deque()
        self._analyzed_frame_count: int = 0
        self._last_timestamp_ms: Optional[float] = None

        # Run counters (cleared only on re-arm)
        self._total_flashes: int = 0
        self._max_flashes_per_window: int = 0

    @property
    def analyzed_frame_count(self) -> int:
        """Frames observed since the last detection reset."""
        return self._analyzed_frame_count

    @property
    def warming_up(self) -> bool:
        return self._analyzed_frame_count < self.warmup_frames

    @property
    def total_flashes(self) -> int:
        """General flashes counted in this run."""
        return self._total_flashes

    @property
    def max_flashes_per_window(self) -> int:
        """Peak general window count seen in this run."""
        return self._max_flashes_per_window

    @property
    def general_count(self) -> int:
        return len(self._general)

    @property
    def red_count(self) -> int:
        return len(self._red)

    def events(self) -> List[FlashEvent]:
        """Flash events currently inside the window, general first."""
        return [*self._general, *self._red]

    def observe(self, timestamp_ms: float, analysis: AnalysisResult) -> FlashObservation:
        """
        Feed one analyzed frame.

        Args:
            timestamp_ms: Frame timestamp (non-decreasing within a run)
            analysis: Signals of the frame

        Returns:
            FlashObservation describing what this frame contributed
        """
        self._analyzed_frame_count += 1

        if self._analyzed_frame_count <= self.warmup_frames:
            self._previous = analysis
            self._last_timestamp_ms = timestamp_ms
            return FlashObservation(
                timestamp_ms=timestamp_ms,
                analysis=analysis,
                warming_up=True,
            )

        if self._last_timestamp_ms is not None and timestamp_ms < self._last_timestamp_ms:
            logger.warning(
                f"Timestamp went backwards ({timestamp_ms:.1f} < "
                f"{self._last_timestamp_ms:.1f}), clearing flash window"
            )
            self._general.clear()
            self._red.clear()
        self._last_timestamp_ms = timestamp_ms

        previous, self._previous = self._previous, analysis

        self._evict(timestamp_ms)

        general_flash = False
        red_flash = False
        if previous is not None and self._both_bright(previous, analysis):
            general_flash = self._is_general_flash(previous, analysis)
            red_flash = self._is_red_flash(previous, analysis)

        if general_flash:
            self._general.append(FlashEvent(timestamp_ms, FlashKind.GENERAL))
            self._total_flashes += 1
        if red_flash:
            self._red.append(FlashEvent(timestamp_ms, FlashKind.RED))

        self._max_flashes_per_window = max(self._max_flashes_per_window, len(self._general))

        crossing = self._crossing()

        if self._analyzed_frame_count % self.log_every_n_frames == 0:
            logger.info(
                f"Flash window [frame {self._analyzed_frame_count}]: "
                f"general={len(self._general)}, red={len(self._red)}, "
                f"total={self._total_flashes}"
            )

        return FlashObservation(
            timestamp_ms=timestamp_ms,
            analysis=analysis,
            general_flash=general_flash,
            red_flash=red_flash,
            general_count=len(self._general),
            red_count=len(self._red),
            crossing=crossing,
        )

    def count_at(self, timestamp_ms: float, kind: FlashKind = FlashKind.GENERAL) -> int:
        """Evict stale events as of timestamp_ms and return the window count."""
        self._evict(timestamp_ms)
        return len(self._general if kind == FlashKind.GENERAL else self._red)

    def reset(self) -> None:
        """Clear detection state: window queues, previous signal, warm-up."""
        self._previous = None
        self._general.clear()
        self._red.clear()
        self._analyzed_frame_count = 0
        self._last_timestamp_ms = None
        logger.debug("FlashEventTracker detection state reset")

    def reset_run_counters(self) -> None:
        """Clear the cumulative and peak counters of the current run."""
        self._total_flashes = 0
        self._max_flashes_per_window = 0

    def _evict(self, now_ms: float) -> None:
        for queue in (self._general, self._red):
            while queue and now_ms - queue[0].timestamp_ms > self.window_ms:
                queue.popleft()

    def _both_bright(self, previous: AnalysisResult, current: AnalysisResult) -> bool:
        return (
            previous.luminance > self.min_brightness
            and current.luminance > self.min_brightness
        )

    def _is_general_flash(self, previous: AnalysisResult, current: AnalysisResult) -> bool:
        change = abs(current.luminance - previous.luminance)
        relative = change / max(previous.luminance, self.relative_floor)
        return (
            relative > self.luminance_threshold
            and change > self.absolute_luminance_threshold
        )

    def _is_red_flash(self, previous: AnalysisResult, current: AnalysisResult) -> bool:
        return abs(current.red_saturation - previous.red_saturation) > self.red_threshold

    def _crossing(self) -> Optional[ThresholdCrossing]:
        if len(self._general) >= self.flash_frequency:
            return ThresholdCrossing(kind=FlashKind.GENERAL, count=len(self._general))
        if len(self._red) >= self.flash_frequency:
            return ThresholdCrossing(kind=FlashKind.RED, count=len(self._red))
        return None

    def get_metrics(self) -> dict:
        """Get tracker metrics for observability."""
        return {
            "analyzed_frame_count": self._analyzed_frame_count,
            "general_count": len(self._general),
            "red_count": len(self._red),
            "total_flashes": self._total_flashes,
            "max_flashes_per_window": self._max_flashes_per_window,
        }
