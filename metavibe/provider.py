"""Capability provider — the generative-AI service behind every pipeline step.

The orchestrator injects a provider matching the CapabilityProvider protocol.
Each method is one logical attempt; retry and fallback policy lives in
metavibe.pipeline.assets, not here.

Two implementations are provided:

    GeminiProvider  — async REST client for the Gemini API (httpx).
    OfflineProvider — canned results, no network. Useful for smoke-testing
                      the orchestration and the HTTP surface without a key.

Tests use the stub provider defined in conftest.py instead.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from metavibe.config import Settings
from metavibe.errors import AnalysisError, ImageError, MetaVibeError, SpeechError, VideoError
from metavibe.models import (
    AnalyzerResponse,
    ArtDirection,
    ColorPalette,
    MusicDescriptor,
    PersonalityVector,
    StoryDirection,
    VideoDirection,
    VideoJob,
    VideoJobStatus,
    VoiceDirection,
)
from metavibe.prompts import ANALYSIS_REQUEST, analysis_instruction

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every provider implementation must match these signatures
# ---------------------------------------------------------------------------

class CapabilityProvider(Protocol):
    async def analyze(self, audio: bytes, mime_type: str) -> AnalyzerResponse: ...

    async def generate_image(
        self, prompt: str, *, model: str, aspect_ratio: str, image_size: str | None = None,
    ) -> bytes: ...

    async def generate_speech(self, text: str, voice: str) -> bytes: ...

    async def submit_video_job(self, prompt: str) -> VideoJob: ...

    async def poll_video_job(self, job: VideoJob) -> VideoJobStatus: ...


# ---------------------------------------------------------------------------
# GeminiProvider — connects to the real service
# ---------------------------------------------------------------------------

class GeminiProvider:
    """Async REST client for the Gemini API.

    Endpoints used:
      models/{model}:generateContent     analysis, image and speech
      models/{model}:predictLongRunning  video submission
      {operation name}                   video polling (GET)

    Args:
        settings:   model names, base URL and timeout.
        credential: returns the API key to send. Called on every request so
                    a key selected mid-session is picked up immediately.
    """

    def __init__(self, settings: Settings, credential: Callable[[], str]) -> None:
        self._settings = settings
        self._base_url = settings.base_url.rstrip("/")
        self._credential = credential
        self._timeout = settings.http_timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        key = self._credential()
        if key:
            headers["x-goog-api-key"] = key
        return headers

    async def _send(
        self, error_cls: type[MetaVibeError], path: str, body: dict | None = None,
    ) -> dict[str, Any]:
        """POST `body` (or GET when body is None) and return the JSON response.

        Transport and HTTP failures are re-raised as `error_cls`.
        """
        url = f"{self._base_url}/{path}"
        logger.debug("gemini request %s url=%s", error_cls.__name__, url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                if body is None:
                    resp = await client.get(url, headers=self._headers())
                else:
                    resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise error_cls(f"Cannot connect to Gemini at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise _status_error(error_cls, e.response) from e
        except httpx.TimeoutException as e:
            raise error_cls(f"Gemini timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise error_cls(f"Transport error talking to Gemini: {e}") from e
        try:
            return resp.json()
        except ValueError as e:
            raise error_cls("Gemini returned invalid JSON") from e

    async def _generate(
        self, error_cls: type[MetaVibeError], model: str, body: dict,
    ) -> dict[str, Any]:
        return await self._send(error_cls, f"models/{model}:generateContent", body)

    async def analyze(self, audio: bytes, mime_type: str = "audio/webm") -> AnalyzerResponse:
        body = {
            "systemInstruction": {"parts": [{"text": analysis_instruction()}]},
            "contents": [{
                "parts": [
                    {"inlineData": {"mimeType": mime_type, "data": _b64encode(audio)}},
                    {"text": ANALYSIS_REQUEST},
                ],
            }],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        data = await self._generate(AnalysisError, self._settings.analysis_model, body)
        text = "".join(p.get("text", "") for p in _parts(data))
        if not text.strip():
            raise AnalysisError("No analysis generated")
        return parse_analysis(text)

    async def generate_image(
        self, prompt: str, *, model: str, aspect_ratio: str, image_size: str | None = None,
    ) -> bytes:
        image_config = {"aspectRatio": aspect_ratio}
        if image_size:
            image_config["imageSize"] = image_size
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": image_config,
            },
        }
        data = await self._generate(ImageError, model, body)
        for part in _parts(data):
            inline = part.get("inlineData") or {}
            if inline.get("data"):
                return _b64decode(inline["data"], ImageError)
        raise ImageError("No image data found in response")

    async def generate_speech(self, text: str, voice: str) -> bytes:
        body = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                },
            },
        }
        data = await self._generate(SpeechError, self._settings.tts_model, body)
        parts = _parts(data)
        inline = (parts[0].get("inlineData") or {}) if parts else {}
        if not inline.get("data"):
            raise SpeechError("TTS generation failed")
        return _b64decode(inline["data"], SpeechError)

    async def submit_video_job(self, prompt: str) -> VideoJob:
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {"aspectRatio": "16:9", "resolution": "720p", "sampleCount": 1},
        }
        data = await self._send(
            VideoError, f"models/{self._settings.video_model}:predictLongRunning", body,
        )
        name = data.get("name")
        if not name:
            raise VideoError("Video submission returned no operation name")
        status = _video_status(data)
        logger.info("video job submitted name=%s done=%s", name, status.done)
        return VideoJob(name=name, done=status.done, result_ref=status.result_ref)

    async def poll_video_job(self, job: VideoJob) -> VideoJobStatus:
        data = await self._send(VideoError, job.name)
        return _video_status(data)


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def parse_analysis(text: str) -> AnalyzerResponse:
    """Validate the analysis JSON, raising AnalysisError on any mismatch."""
    try:
        return AnalyzerResponse.model_validate_json(text)
    except ValidationError as e:
        raise AnalysisError(f"Analysis returned an unparsable payload: {e}") from e


def _video_status(data: dict[str, Any]) -> VideoJobStatus:
    """Read a long-running operation body into a VideoJobStatus."""
    if "error" in data:
        raise _body_error(VideoError, data["error"])
    if not data.get("done"):
        return VideoJobStatus(done=False)
    samples = (
        data.get("response", {})
        .get("generateVideoResponse", {})
        .get("generatedSamples") or []
    )
    uri = samples[0].get("video", {}).get("uri") if samples else None
    return VideoJobStatus(done=True, result_ref=uri)


def _parts(data: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    return (candidates[0].get("content") or {}).get("parts") or []


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(data: str, error_cls: type[MetaVibeError]) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except ValueError as e:
        raise error_cls("Response payload is not valid base64") from e


def _body_error(error_cls: type[MetaVibeError], err: Any) -> MetaVibeError:
    """Build `error_cls` from a Gemini `{"code", "message", "status"}` body."""
    if not isinstance(err, dict):
        return error_cls(f"Gemini error: {err}")
    message = err.get("message") or "unknown error"
    if error_cls is VideoError:
        return VideoError(message, status=err.get("status"), code=err.get("code"))
    return error_cls(message)


def _status_error(error_cls: type[MetaVibeError], response: httpx.Response) -> MetaVibeError:
    try:
        err = response.json()["error"]
    except (ValueError, KeyError, TypeError):
        err = {"message": response.text or "", "code": response.status_code}
    if isinstance(err, dict):
        err.setdefault("code", response.status_code)
        err["message"] = f"Gemini returned HTTP {response.status_code}: {err.get('message', '')}"
    return _body_error(error_cls, err)


# ---------------------------------------------------------------------------
# OfflineProvider — canned results; no network calls
# ---------------------------------------------------------------------------

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class OfflineProvider:
    """Returns a fixed calm profile and placeholder media.

    Lets you drive the whole state machine (and the HTTP surface) without a
    Gemini key. The video job finishes on the first poll.
    """

    def __init__(self, video_ref: str | None = "https://example.invalid/offline.mp4?alt=media") -> None:
        self._video_ref = video_ref

    async def analyze(self, audio: bytes, mime_type: str = "audio/webm") -> AnalyzerResponse:
        logger.debug("OfflineProvider analyze bytes=%d mime=%s", len(audio), mime_type)
        return AnalyzerResponse(
            personality=PersonalityVector(
                traits=["Calm", "Curious"],
                energy=3,
                mood="Serene",
                colors=ColorPalette(primary="#aabbcc", secondary="#334455", accent="#ffcc66"),
            ),
            music=MusicDescriptor(genre="Lofi", bpm=72, instruments=["Rhodes", "Vinyl crackle"], vibe="Rainy window"),
            art=ArtDirection(prompt="A watercolor cottage in a misty forest", style="Watercolor"),
            story=StoryDirection(narrative="You move gently through the morning fog."),
            video=VideoDirection(prompt="Slow dolly through a misty forest at dawn"),
            tts=VoiceDirection(voice_name="Kore", speaking_rate=0.9, pitch="low"),
        )

    async def generate_image(
        self, prompt: str, *, model: str, aspect_ratio: str, image_size: str | None = None,
    ) -> bytes:
        return _PNG_SIGNATURE

    async def generate_speech(self, text: str, voice: str) -> bytes:
        return b"\x00\x00" * 240

    async def submit_video_job(self, prompt: str) -> VideoJob:
        return VideoJob(name="offline/operations/0")

    async def poll_video_job(self, job: VideoJob) -> VideoJobStatus:
        return VideoJobStatus(done=True, result_ref=self._video_ref)
