"""
Service Tests
=============

Tests for the FastAPI endpoints and the video / stats sockets.
"""

import numpy as np
import pytest
from fastapi.testclient import TestClient

from flash_guard.config import settings
from flash_guard.main import app
from flash_guard.stream.image_decoder import encode_image_b64


WATCH_URL = "https://www.youtube.com/watch?v=abc"


def solid_png(value: int) -> str:
    rgba = np.full((36, 64, 4), value, dtype=np.uint8)
    rgba[:, :, 3] = 255
    return encode_image_b64(rgba)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Service client with file storage in a temporary directory."""
    monkeypatch.setattr(settings.persistence, "directory", str(tmp_path))
    monkeypatch.setattr(settings.persistence, "retry_backoff_ms", 1)
    monkeypatch.setattr(settings.detection, "warmup_frames", 0)
    monkeypatch.setattr(settings.detection, "analyze_every_n_frames", 1)
    monkeypatch.setattr(settings.stream, "enabled", False)

    with TestClient(app) as test_client:
        yield test_client


class TestHttpEndpoints:
    """Tests for the HTTP surface."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "FlashGuard"
        assert response.json()["protection_enabled"] is True

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_after_registry_load(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["registry_loaded"] is True

    def test_stats_start_at_zero(self, client):
        response = client.get("/stats")
        assert response.status_code == 200
        assert response.json() == {
            "videosMonitored": 0,
            "warningsIssued": 0,
            "flashesDetected": 0,
            "degraded": False,
        }

    def test_metrics(self, client):
        body = client.get("/metrics").json()
        assert body["degraded"] is False
        assert body["monitor"]["enabled"] is True
        assert "updateStats" in body["channel"]["receivers"]

    def test_control_disable_and_enable(self, client, tmp_path):
        assert client.post("/control", json={"action": "disable"}).json() == {"success": True}
        assert client.get("/").json()["protection_enabled"] is False
        assert '"enabled": false' in (tmp_path / "sync.json").read_text()

        assert client.post("/control", json={"action": "enable"}).json() == {"success": True}
        assert client.get("/").json()["protection_enabled"] is True

    def test_control_reset_stats(self, client):
        assert client.post("/control", json={"action": "resetStats"}).json() == {"success": True}

    def test_control_rejects_unknown_action(self, client):
        assert client.post("/control", json={"action": "explode"}).status_code == 422


class TestVideoSocket:
    """Tests for the /ws/video protocol."""

    def test_flashing_video_is_paused_and_warned(self, client):
        white, gray = solid_png(255), solid_png(128)

        with client.websocket_connect("/ws/video") as ws:
            ws.send_json({"type": "attach", "page_url": WATCH_URL, "paused": False, "current_time": 0.0})
            for i in range(6):
                ws.send_json({
                    "type": "frame",
                    "frame_id": i,
                    "timestamp_ms": i * 100.0,
                    "image": white if i % 2 == 0 else gray,
                })

            pause = ws.receive_json()
            warning = ws.receive_json()

            assert pause["command"] == "pause"
            assert warning["event"] == "warning"
            assert warning["payload"]["type"] == "general"
            assert warning["payload"]["flashCount"] == 3
            assert warning["payload"]["timestampSeconds"] == pytest.approx(0.3)

            ws.send_json({"type": "dismiss", "continue_playback": True})
            assert ws.receive_json()["event"] == "hideWarning"
            assert ws.receive_json()["command"] == "play"

    def test_invalid_message_reports_error(self, client):
        with client.websocket_connect("/ws/video") as ws:
            ws.send_json({"type": "frame", "timestamp_ms": 0.0})
            reply = ws.receive_json()
            assert reply["event"] == "error"


class TestStatsSocket:
    """Tests for /ws/stats."""

    def test_pushes_snapshot_and_updates(self, client):
        with client.websocket_connect("/ws/stats") as ws:
            assert ws.receive_json()["videosMonitored"] == 0

            client.post("/control", json={"action": "resetStats"})

            assert ws.receive_json() == {
                "videosMonitored": 0,
                "warningsIssued": 0,
                "flashesDetected": 0,
            }
