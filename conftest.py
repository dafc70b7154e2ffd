"""Shared fixtures: scriptable stand-ins for the provider and the environment."""

from __future__ import annotations

import pytest

from metavibe.config import Settings
from metavibe.errors import AuthorizationError, CaptureError
from metavibe.models import (
    AnalyzerResponse,
    CapturedAudio,
    VideoJob,
    VideoJobStatus,
)
from metavibe.pipeline.orchestrator import Orchestrator

CALM_ANALYSIS = {
    "personality": {
        "traits": ["Calm"],
        "energy": 2,
        "mood": "Serene",
        "colors": {"primary": "#aabbcc", "secondary": "#112233", "accent": "#ffeedd"},
    },
    "music": {"genre": "Ambient", "bpm": 70, "instruments": ["Pads", "Piano"], "vibe": "Still lake"},
    "art": {"prompt": "A watercolor cottage in a misty forest", "style": "Watercolor"},
    "story": {"narrative": "You drift through the quiet morning."},
    "video": {"prompt": "Slow pan over a misty lake"},
    "tts": {"voice_name": "Kore", "speaking_rate": 0.9, "pitch": "low"},
}


def _outcome(value):
    if isinstance(value, BaseException):
        raise value
    return value


class StubProvider:
    """Returns canned results; any result set to an exception is raised instead.

    `video_submits` and `video_polls` are consumed in order, one entry per call.
    """

    def __init__(self) -> None:
        self.analysis: AnalyzerResponse | BaseException = AnalyzerResponse.model_validate(CALM_ANALYSIS)
        self.images: dict[str, bytes | BaseException] = {}
        self.default_image: bytes | BaseException = b"png-bytes"
        self.speech: bytes | BaseException = b"pcm-bytes"
        self.video_submits: list[VideoJob | BaseException] = []
        self.video_polls: list[VideoJobStatus | BaseException] = []
        self.calls: list[tuple] = []

    async def analyze(self, audio: bytes, mime_type: str) -> AnalyzerResponse:
        self.calls.append(("analyze", audio, mime_type))
        return _outcome(self.analysis)

    async def generate_image(self, prompt, *, model, aspect_ratio, image_size=None) -> bytes:
        self.calls.append(("image", prompt, model, aspect_ratio, image_size))
        return _outcome(self.images.get(model, self.default_image))

    async def generate_speech(self, text: str, voice: str) -> bytes:
        self.calls.append(("speech", text, voice))
        return _outcome(self.speech)

    async def submit_video_job(self, prompt: str) -> VideoJob:
        self.calls.append(("video_submit", prompt))
        if not self.video_submits:
            return VideoJob(name="operations/default")
        return _outcome(self.video_submits.pop(0))

    async def poll_video_job(self, job: VideoJob) -> VideoJobStatus:
        self.calls.append(("video_poll", job.name))
        if not self.video_polls:
            return VideoJobStatus(done=True, result_ref=None)
        return _outcome(self.video_polls.pop(0))

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)


class StubAuthorizer:
    def __init__(self, authorized: bool = True) -> None:
        self.authorized = authorized
        self.fail_request = False
        self.requests = 0
        self.key = "test-key"

    def credential(self) -> str:
        return self.key if self.authorized else ""

    async def has_authorization(self) -> bool:
        return self.authorized

    async def request_authorization(self) -> None:
        self.requests += 1
        if self.fail_request:
            raise AuthorizationError("No API key selected")
        self.authorized = True


class StubStream:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.closed = False
        self.finalize_error: BaseException | None = None

    def write(self, chunk: bytes) -> None:
        self.data += chunk

    def finalize(self) -> CapturedAudio:
        if self.finalize_error is not None:
            raise self.finalize_error
        return CapturedAudio(data=self.data, mime_type="audio/webm")

    def close(self) -> None:
        self.closed = True


class StubCapture:
    def __init__(self) -> None:
        self.fail = False
        self.streams: list[StubStream] = []

    async def open(self) -> StubStream:
        if self.fail:
            raise CaptureError("Microphone access denied")
        stream = StubStream(b"voice-clip")
        self.streams.append(stream)
        return stream


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def authorizer() -> StubAuthorizer:
    return StubAuthorizer()


@pytest.fixture
def capture() -> StubCapture:
    return StubCapture()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settings() -> Settings:
    return Settings(video_poll_interval=5.0, video_max_polls=5)


@pytest.fixture
def orchestrator(provider, capture, authorizer, settings, sleep) -> Orchestrator:
    return Orchestrator(
        provider=provider, capture=capture, authorizer=authorizer,
        settings=settings, sleep=sleep,
    )
