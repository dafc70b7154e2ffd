"""Tests for the /api/session endpoints, driven end-to-end with OfflineProvider."""

import asyncio
import base64
import time

import pytest
from fastapi.testclient import TestClient

from metavibe.app import create_app
from metavibe.config import Settings
from metavibe.environment import BufferedCapture
from metavibe.pipeline.orchestrator import Orchestrator
from metavibe.provider import OfflineProvider


class StalledVideoProvider(OfflineProvider):
    """Video submission never completes until cancelled."""

    def __init__(self) -> None:
        super().__init__()
        self.started = False
        self.cancelled = False

    async def submit_video_job(self, prompt: str):
        self.started = True
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.fixture
def client(authorizer):
    settings = Settings(provider="offline", video_poll_interval=0.0)
    capture = BufferedCapture()
    orchestrator = Orchestrator(
        provider=OfflineProvider(), capture=capture, authorizer=authorizer, settings=settings,
    )
    app = create_app(settings=settings, orchestrator=orchestrator, capture=capture)
    with TestClient(app) as c:
        yield c


def _wait_for(client: TestClient, predicate, attempts: int = 200) -> dict:
    for _ in range(attempts):
        body = client.get("/api/session").json()
        if predicate(body):
            return body
        time.sleep(0.01)
    raise AssertionError(f"session never reached expected state: {body}")


def test_initial_snapshot(client):
    body = client.get("/api/session").json()
    assert body["phase"] == "idle"
    assert body["status_message"] == "Ready to vibe"
    assert body["assets"] is None


def test_full_session(client):
    assert client.post("/api/session/start").json()["phase"] == "capturing"
    r = client.post("/api/session/audio", content=b"chunk-1")
    assert r.json() == {"ok": True, "bytes": 7}
    assert client.post("/api/session/stop").json()["phase"] == "analyzing"

    body = _wait_for(client, lambda b: b["assets"] and b["assets"]["video_uri"])
    assert body["phase"] == "ready"
    assert body["personality"]["mood"] == "Serene"
    assert base64.b64decode(body["assets"]["art_image"]).startswith(b"\x89PNG")
    assert body["assets"]["speech_audio"]
    assert body["assets"]["video_uri"].endswith("alt=media&key=test-key")


def test_start_twice_conflicts(client):
    client.post("/api/session/start")
    r = client.post("/api/session/start")
    assert r.status_code == 409


def test_stop_when_idle_conflicts(client):
    assert client.post("/api/session/stop").status_code == 409


def test_audio_when_idle_conflicts(client):
    r = client.post("/api/session/audio", content=b"x")
    assert r.status_code == 409
    assert "No recording" in r.json()["detail"]


def test_reset_after_ready(client):
    client.post("/api/session/start")
    client.post("/api/session/stop")
    _wait_for(client, lambda b: b["phase"] == "ready")
    body = client.post("/api/session/reset").json()
    assert body["phase"] == "idle"
    assert body["personality"] is None
    assert body["assets"] is None


def test_start_without_credential_stays_idle(client, authorizer):
    authorizer.authorized = False
    authorizer.fail_request = True
    body = client.post("/api/session/start").json()
    assert body["phase"] == "idle"
    assert body["error_message"] == "No API key selected"


def test_shutdown_cancels_pending_video(authorizer):
    settings = Settings(provider="offline", video_poll_interval=0.0)
    capture = BufferedCapture()
    provider = StalledVideoProvider()
    orchestrator = Orchestrator(
        provider=provider, capture=capture, authorizer=authorizer, settings=settings,
    )
    app = create_app(settings=settings, orchestrator=orchestrator, capture=capture)
    with TestClient(app) as c:
        c.post("/api/session/start")
        c.post("/api/session/stop")
        _wait_for(c, lambda b: b["phase"] == "ready")
        for _ in range(200):
            if provider.started:
                break
            time.sleep(0.01)
        assert provider.started
    assert provider.cancelled
