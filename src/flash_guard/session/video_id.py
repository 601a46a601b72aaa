"""
Video Identity
==============

Resolves the page a video is embedded in to a stable video ID used for
per-session dedup.

    https://www.youtube.com/watch?v=dQw4w9WgXcQ  -> "dQw4w9WgXcQ"
    https://www.youtube.com/shorts/abc123         -> "abc123"
    anything else                                 -> random synthetic ID
"""

import re
import uuid
from typing import Optional
from urllib.parse import parse_qs, urlparse


PLATFORM_PATTERNS = {
    "youtube": re.compile(r"(^|\.)youtube\.com$|^youtu\.be$"),
    "tiktok": re.compile(r"(^|\.)tiktok\.com$"),
    "twitter": re.compile(r"(^|\.)(twitter|x)\.com$"),
    "instagram": re.compile(r"(^|\.)instagram\.com$"),
    "twitch": re.compile(r"(^|\.)twitch\.tv$"),
}

_SHORTS_PATH = re.compile(r"/shorts/([^/?#]+)")


def platform_for_url(url: Optional[str]) -> Optional[str]:
    """Return the platform name a URL belongs to, or None."""
    if not url:
        return None
    host = (urlparse(url).hostname or "").lower()
    for platform, pattern in PLATFORM_PATTERNS.items():
        if pattern.search(host):
            return platform
    return None


def platform_video_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the platform video ID from a page URL.

    Returns:
        The ID for YouTube watch, shorts and youtu.be URLs, otherwise None.
    """
    if platform_for_url(url) != "youtube":
        return None

    parsed = urlparse(url)
    if parsed.hostname and parsed.hostname.lower() == "youtu.be":
        video_id = parsed.path.strip("/").split("/")[0]
        return video_id or None

    match = _SHORTS_PATH.search(parsed.path)
    if match:
        return match.group(1)

    if "/watch" in parsed.path:
        values = parse_qs(parsed.query).get("v")
        if values and values[0]:
            return values[0]

    return None


def synthetic_video_id() -> str:
    return f"synthetic-{uuid.uuid4().hex}"


def resolve_video_id(url: Optional[str]) -> str:
    """Platform video ID for the URL, or a fresh synthetic ID."""
    return platform_video_id(url) or synthetic_video_id()
