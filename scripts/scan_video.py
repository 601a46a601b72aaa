#!/usr/bin/env python3
"""
Video File Scan Script
======================

Standalone script that runs the flash detector over a local video file.

This script:
    1. Opens the file with OpenCV
    2. Plays it through a VideoMonitor with in-memory storage
    3. Logs every warning (optionally continuing after each one)
    4. Reports a final summary

Usage:
    python scripts/scan_video.py clip.mp4
    python scripts/scan_video.py clip.mp4 --continue-after-warning
    python scripts/scan_video.py clip.mp4 --red-threshold 0.6 --realtime
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from flash_guard.config import CaptureConfig, DetectionConfig, PolicyConfig
from flash_guard.detector import LoggingWarningSink
from flash_guard.errors import FrameCaptureError
from flash_guard.messaging import MessageChannel
from flash_guard.models.state import DetectorState
from flash_guard.monitor import VideoMonitor
from flash_guard.session import SessionRegistry
from flash_guard.stats import StatsAggregator
from flash_guard.storage import MemoryStore, TieredStorage
from flash_guard.stream import VideoFileSource


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


HANDLE = "file-0"


async def run_scan(
    path: str,
    detection: DetectionConfig,
    realtime: bool,
    continue_after_warning: bool,
) -> dict:
    """
    Scan one video file.

    Args:
        path: Video file path
        detection: Detection thresholds
        realtime: Play at the file's frame rate instead of as fast as possible
        continue_after_warning: Dismiss each warning and keep playing

    Returns:
        Final summary dict
    """
    logger.info("=" * 60)
    logger.info("FlashGuard Video Scan")
    logger.info("=" * 60)
    logger.info(f"File: {path}")
    logger.info(f"Red threshold: {detection.red_threshold}")
    logger.info(f"Analyze every: {detection.analyze_every_n_frames} frames")
    logger.info("=" * 60)

    capture = CaptureConfig()
    storage = TieredStorage(MemoryStore(), MemoryStore())
    registry = SessionRegistry(storage)
    stats = StatsAggregator(storage)
    channel = MessageChannel()
    monitor = VideoMonitor(
        storage=storage,
        registry=registry,
        stats=stats,
        channel=channel,
        detection=detection,
        policy=PolicyConfig(),
        capture=capture,
    )
    await monitor.load()

    source = VideoFileSource(
        path,
        realtime=realtime,
        max_width=capture.max_width,
        max_height=capture.max_height,
    )
    sink = LoggingWarningSink()
    start_time = time.time()

    try:
        source.play()
        detector = await monitor.attach(HANDLE, source, sink, video_id=Path(path).stem)

        while detector is not None:
            await detector.wait_idle()
            if detector.state == DetectorState.WARNED and continue_after_warning:
                logger.info(f"Continuing after warning at {source.current_time:.1f}s")
                monitor.dismiss(HANDLE, continue_playback=True)
                continue
            break

        if detector is not None and detector.state != DetectorState.STOPPED:
            logger.info(f"Scan stopped at {source.current_time:.1f}s")
        final_metrics = detector.get_metrics() if detector else {}

    except KeyboardInterrupt:
        logger.info("Scan interrupted by user")
        final_metrics = {}
    finally:
        await monitor.shutdown()
        await stats.stop()
        source.close()

    total_time = time.time() - start_time
    counters = await stats.snapshot()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Scan time: {total_time:.1f} seconds")
    logger.info(f"Frames seen: {final_metrics.get('frame_count', 0)}")
    logger.info(f"Frames analyzed: {final_metrics.get('analyzed_frame_count', 0)}")
    logger.info(f"Total flashes: {final_metrics.get('total_flashes', 0)}")
    logger.info(f"Peak flashes per window: {final_metrics.get('max_flashes_per_window', 0)}")
    logger.info(f"Warnings: {len(sink.warnings)}")
    for handle, payload in sink.warnings:
        logger.info(
            f"  {payload.timestamp_seconds:8.2f}s  {payload.type.value:<7} "
            f"{payload.flash_count} flashes/window"
        )
    logger.info(f"Stats: {counters.to_store()}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "warnings": len(sink.warnings),
        **final_metrics,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Scan a video file for photosensitive flashing"
    )
    parser.add_argument("path", type=str, help="Video file to scan")
    parser.add_argument(
        "--red-threshold",
        type=float,
        default=DetectionConfig().red_threshold,
        help="Red saturation change that counts as a red flash (default: 0.8)",
    )
    parser.add_argument(
        "--analyze-every",
        type=int,
        default=DetectionConfig().analyze_every_n_frames,
        help="Analyze every Nth frame (default: 3)",
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Play at the file's frame rate",
    )
    parser.add_argument(
        "--continue-after-warning",
        action="store_true",
        help="Dismiss warnings and keep scanning to the end",
    )

    args = parser.parse_args()

    detection = DetectionConfig(
        red_threshold=args.red_threshold,
        analyze_every_n_frames=args.analyze_every,
    )

    try:
        result = asyncio.run(run_scan(
            path=args.path,
            detection=detection,
            realtime=args.realtime,
            continue_after_warning=args.continue_after_warning,
        ))
    except FrameCaptureError as e:
        logger.error(str(e))
        sys.exit(2)

    # Exit code 1 signals the file triggered at least one warning
    sys.exit(1 if result["warnings"] > 0 else 0)


if __name__ == "__main__":
    main()
