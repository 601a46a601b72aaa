"""
Session Module
==============

Video identity resolution and the durable monitored/warned registry.
"""

from flash_guard.session.registry import MONITORED_KEY, WARNED_KEY, SessionRegistry
from flash_guard.session.video_id import (
    platform_for_url,
    platform_video_id,
    resolve_video_id,
    synthetic_video_id,
)

__all__ = [
    "SessionRegistry",
    "MONITORED_KEY",
    "WARNED_KEY",
    "resolve_video_id",
    "platform_video_id",
    "platform_for_url",
    "synthetic_video_id",
]
