"""
Video Identity Tests
====================
"""

import pytest

from flash_guard.session import platform_for_url, platform_video_id, resolve_video_id


class TestVideoId:
    """Tests for page URL → video ID resolution."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("https://www.youtube.com/watch?list=PL1&v=abc123&t=40", "abc123"),
            ("https://m.youtube.com/shorts/xyz789?feature=share", "xyz789"),
            ("https://youtu.be/abc123", "abc123"),
        ],
    )
    def test_youtube_ids(self, url, expected):
        assert platform_video_id(url) == expected
        assert resolve_video_id(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/",
            "https://www.youtube.com/results?search_query=cats",
            "https://www.tiktok.com/@someone/video/123",
            None,
        ],
    )
    def test_non_watch_pages_have_no_platform_id(self, url):
        assert platform_video_id(url) is None

    def test_synthetic_ids_are_unique(self):
        first = resolve_video_id("https://example.com/video")
        second = resolve_video_id("https://example.com/video")
        assert first.startswith("synthetic-")
        assert first != second

    def test_platform_detection(self):
        assert platform_for_url("https://x.com/user/status/1") == "twitter"
        assert platform_for_url("https://www.twitch.tv/streamer") == "twitch"
        assert platform_for_url("https://notyoutube.com/watch?v=1") is None
        assert platform_for_url("https://example.com") is None
