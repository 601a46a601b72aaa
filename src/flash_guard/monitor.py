"""
Video Monitor
=============

Owns every detector in the process through an explicit identity map
``handle → FlashDetector`` and routes video lifecycle events to them.

Responsibilities:
    - gate detector creation on the session registry having loaded
    - dedup videosMonitored through the registry before counting
    - record warnings (registry + stats) without blocking detectors
    - apply the control actions: enable, disable, resetStats

Stats sends from detectors are fire-and-forget through the message
channel; the registry dedup check is the only awaited step before the
videosMonitored increment is sent.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from flash_guard.config import CaptureConfig, DetectionConfig, PolicyConfig
from flash_guard.detector import FlashDetector, WarningSink
from flash_guard.errors import PersistenceError
from flash_guard.messaging import MessageChannel
from flash_guard.models.output import WarningPayload
from flash_guard.models.state import DetectorState
from flash_guard.models.stats import StatName
from flash_guard.session import SessionRegistry, platform_video_id, synthetic_video_id
from flash_guard.stats import StatsAggregator
from flash_guard.storage import StorageTier, TieredStorage
from flash_guard.stream.sources import FrameSource


logger = logging.getLogger(__name__)


ENABLED_KEY = "enabled"
CONTROL_ACTIONS = ("enable", "disable", "resetStats")


class VideoMonitor:
    """
    Identity map of detectors plus the control surface.

    Example:
        monitor = VideoMonitor(storage, registry, stats, channel)
        await monitor.load()
        await monitor.attach("tab1-video0", source, sink,
                             page_url="https://www.youtube.com/watch?v=abc")
        monitor.on_play("tab1-video0")
    """

    def __init__(
        self,
        storage: TieredStorage,
        registry: SessionRegistry,
        stats: StatsAggregator,
        channel: MessageChannel,
        detection: Optional[DetectionConfig] = None,
        policy: Optional[PolicyConfig] = None,
        capture: Optional[CaptureConfig] = None,
    ) -> None:
        self.storage = storage
        self.registry = registry
        self.stats = stats
        self.channel = channel
        self.detection = detection or DetectionConfig()
        self.policy = policy or PolicyConfig()
        self.capture = capture or CaptureConfig()

        self._detectors: Dict[str, FlashDetector] = {}
        self._enabled: bool = True
        self._tasks: Set[asyncio.Task] = set()
        self._warnings_issued: int = 0

        channel.register("updateStats", stats.handle_message)
        channel.register("getStats", stats.handle_get)
        for action in CONTROL_ACTIONS:
            channel.register(action, self.handle_control)

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Load the enabled flag and the session registry concurrently."""
        settings_data, _ = await asyncio.gather(
            self.storage.get([ENABLED_KEY], StorageTier.SYNC),
            self.registry.load(),
        )
        self._enabled = settings_data.get(ENABLED_KEY, True) is not False
        logger.info(f"Video monitor loaded: protection {'enabled' if self._enabled else 'disabled'}")

    @property
    def enabled(self) -> bool:
        return self._enabled

    # -------------------------------------------------------------------------
    # Identity map
    # -------------------------------------------------------------------------

    def get(self, handle: str) -> Optional[FlashDetector]:
        return self._detectors.get(handle)

    @property
    def handles(self) -> List[str]:
        return list(self._detectors)

    async def attach(
        self,
        handle: str,
        source: FrameSource,
        sink: WarningSink,
        page_url: Optional[str] = None,
        video_id: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> Optional[FlashDetector]:
        """
        Bind a video element to a detector.

        Re-attaching the same handle with the same video and media source
        keeps the existing detector. A different video or source replaces it.
        On pages without a platform video id the element keeps its synthetic
        id for as long as its media source is unchanged.

        Returns:
            The detector, or None when protection is disabled.
        """
        if not self._enabled:
            logger.info(f"Protection disabled, not monitoring [{handle}]")
            return None

        await self.registry.wait_loaded()

        resolved_id = video_id or platform_video_id(page_url)
        existing = self._detectors.get(handle)
        if existing is not None:
            if resolved_id is None and existing.source_key == source_url:
                # Unrecognized page, same media: keep the element's synthetic id
                resolved_id = existing.video_id
            if existing.video_id == resolved_id and existing.source_key == source_url:
                logger.debug(f"Same video re-attached [{handle}], keeping detector")
                return existing
            logger.info(f"New video on [{handle}]: {existing.video_id} → {resolved_id}")
            self.detach(handle)

        if resolved_id is None:
            resolved_id = synthetic_video_id()
        detector = self._create(handle, resolved_id, source, sink, source_url)

        try:
            is_new = await self.registry.register_if_new(resolved_id)
        except PersistenceError as e:
            logger.error(f"Could not record video {resolved_id}, not counting it: {e}")
            is_new = False
        if is_new:
            self.channel.fire_and_forget({
                "action": "updateStats",
                "stat": StatName.VIDEOS_MONITORED.value,
            })

        # The element may have been detached while the registry was written
        if self._detectors.get(handle) is detector and not source.paused:
            detector.start()
        return detector

    def _create(
        self,
        handle: str,
        video_id: str,
        source: FrameSource,
        sink: WarningSink,
        source_key: Optional[str],
    ) -> FlashDetector:
        detector = FlashDetector(
            handle=handle,
            video_id=video_id,
            source=source,
            sink=sink,
            detection=self.detection,
            policy=self.policy,
            capture=self.capture,
            on_warning=self._on_warning,
            source_key=source_key,
        )
        self._detectors[handle] = detector
        logger.info(f"Attached detector for video {video_id} [{handle}]")
        return detector

    def detach(self, handle: str) -> None:
        """Stop and forget the detector for a handle."""
        detector = self._detectors.pop(handle, None)
        if detector is not None:
            detector.stop()
            logger.info(f"Detached detector for video {detector.video_id} [{handle}]")

    # -------------------------------------------------------------------------
    # Lifecycle events
    # -------------------------------------------------------------------------

    def on_play(self, handle: str) -> None:
        detector = self._detectors.get(handle)
        if detector is None or not self._enabled:
            return
        if detector.state == DetectorState.STOPPED:
            # Replay after the end: fresh detector, registry keeps it counted once
            detector = self._create(
                handle, detector.video_id, detector.source, detector.sink, detector.source_key
            )
        detector.play()

    def on_pause(self, handle: str) -> None:
        detector = self._detectors.get(handle)
        if detector is not None:
            detector.pause()

    def on_seeking(self, handle: str, position_seconds: float) -> None:
        detector = self._detectors.get(handle)
        if detector is not None:
            detector.seek(position_seconds)

    def on_ended(self, handle: str) -> None:
        detector = self._detectors.get(handle)
        if detector is not None:
            detector.finish()

    def dismiss(self, handle: str, continue_playback: bool) -> None:
        detector = self._detectors.get(handle)
        if detector is None:
            return
        if continue_playback and not self._enabled:
            detector.sink.hide_warning(handle)
            detector.source.play()
            detector.sink.resume_now(handle)
            return
        detector.dismiss(continue_playback)

    # -------------------------------------------------------------------------
    # Warning side effects
    # -------------------------------------------------------------------------

    def _on_warning(self, detector: FlashDetector, payload: WarningPayload) -> None:
        self._warnings_issued += 1
        task = asyncio.create_task(self._record_warning(detector.video_id, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _record_warning(self, video_id: str, payload: WarningPayload) -> None:
        try:
            first_warning = await self.registry.mark_warned(video_id)
        except PersistenceError as e:
            logger.error(f"Could not record warning for video {video_id}: {e}")
            first_warning = False

        if first_warning or not self.policy.dedupe_warnings_per_video:
            self.channel.fire_and_forget({
                "action": "updateStats",
                "stat": StatName.WARNINGS_ISSUED.value,
            })

        if payload.cumulative_flashes > 0:
            self.channel.fire_and_forget({
                "action": "updateStats",
                "stat": StatName.FLASHES_DETECTED.value,
                "count": payload.cumulative_flashes,
            })

    # -------------------------------------------------------------------------
    # Control actions
    # -------------------------------------------------------------------------

    async def handle_control(self, message: Dict[str, Any]) -> dict:
        """
        Apply a control action.

        Returns:
            {"success": bool}
        """
        action = message.get("action")
        try:
            if action == "enable":
                await self.set_enabled(True)
            elif action == "disable":
                await self.set_enabled(False)
            elif action == "resetStats":
                await self.reset_stats()
            else:
                return {"success": False, "error": f"Unknown action {action!r}"}
        except PersistenceError as e:
            logger.error(f"Control action {action} failed: {e}")
            return {"success": False, "error": str(e)}
        return {"success": True}

    async def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info(f"Protection {'enabled' if enabled else 'disabled'}")

        if enabled:
            for detector in self._detectors.values():
                if not detector.source.paused and detector.state != DetectorState.WARNED:
                    detector.start()
        else:
            for handle, detector in self._detectors.items():
                detector.stop()
                if detector.warning_shown and detector.state == DetectorState.WARNED:
                    detector.sink.hide_warning(handle)

        await self.storage.set({ENABLED_KEY: enabled}, StorageTier.SYNC)

    async def reset_stats(self) -> None:
        await self.registry.clear()
        await self.stats.reset()

    async def shutdown(self) -> None:
        """Stop every detector and wait for pending warning records."""
        for handle in list(self._detectors):
            self.detach(handle)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.channel.drain()

    def get_metrics(self) -> dict:
        return {
            "enabled": self._enabled,
            "detectors": len(self._detectors),
            "running_detectors": sum(1 for d in self._detectors.values() if d.running),
            "warnings_issued": self._warnings_issued,
            "monitored_videos": len(self.registry.monitored_ids()),
            "warned_videos": len(self.registry.warned_ids()),
        }

    def detector_metrics(self) -> List[dict]:
        return [d.get_metrics() for d in self._detectors.values()]
