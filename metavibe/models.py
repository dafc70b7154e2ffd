"""Core domain models.

The orchestrator, the provider and the HTTP surface all exchange these types.
Pydantic is used for validation at every data boundary; every model is frozen
so a published snapshot can never change under the reader. Binary payloads
travel as base64 in JSON.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")


class Phase(str, Enum):
    """Stage of the current session."""

    IDLE = "idle"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    COMPOSING_ASSETS = "composing_assets"
    READY = "ready"
    FAILED = "failed"


STATUS_MESSAGES: dict[Phase, str] = {
    Phase.IDLE: "Ready to vibe",
    Phase.CAPTURING: "Listening...",
    Phase.ANALYZING: "Extracting personality vector...",
    Phase.COMPOSING_ASSETS: "Generating multimodal experience...",
    Phase.READY: "Your vibe is ready",
    Phase.FAILED: "Something went wrong",
}


# ---------------------------------------------------------------------------
# Analysis payload
# ---------------------------------------------------------------------------

class ColorPalette(_Frozen):
    primary: str
    secondary: str
    accent: str


class PersonalityVector(_Frozen):
    """Creative-direction summary derived from the voice clip."""

    traits: list[str] = Field(min_length=1)
    energy: float = Field(ge=1, le=10)
    mood: str
    colors: ColorPalette


class MusicDescriptor(_Frozen):
    genre: str
    bpm: int
    instruments: list[str] = Field(default_factory=list)
    vibe: str


class ArtDirection(_Frozen):
    prompt: str
    style: str = ""


class StoryDirection(_Frozen):
    narrative: str


class VideoDirection(_Frozen):
    prompt: str


class VoiceDirection(_Frozen):
    voice_name: str = ""
    speaking_rate: float = 1.0
    pitch: str = "medium"


class AnalyzerResponse(_Frozen):
    """Everything the analysis call returns; feeds every later generation step."""

    personality: PersonalityVector
    music: MusicDescriptor
    art: ArtDirection
    story: StoryDirection
    video: VideoDirection
    tts: VoiceDirection = Field(default_factory=VoiceDirection)


# ---------------------------------------------------------------------------
# Generated output
# ---------------------------------------------------------------------------

class GeneratedAssets(_Frozen):
    """The composed vibe card. Only `video_uri` is ever filled in later."""

    art_prompt: str
    art_image: bytes | None = None
    story_text: str
    music: MusicDescriptor
    video_uri: str | None = None
    speech_audio: bytes | None = None


class SessionSnapshot(_Frozen):
    """Read-only view of the session, published on every transition."""

    session_id: int = 0
    phase: Phase = Phase.IDLE
    personality: PersonalityVector | None = None
    assets: GeneratedAssets | None = None
    error_message: str | None = None
    status_message: str = STATUS_MESSAGES[Phase.IDLE]


# ---------------------------------------------------------------------------
# Capture & video job handles
# ---------------------------------------------------------------------------

class CapturedAudio(_Frozen):
    data: bytes
    mime_type: str = "audio/webm"


class VideoJob(_Frozen):
    """Handle of a long-running video generation job.

    `done` and `result_ref` reflect the submission response; a job can finish
    before the first poll.
    """

    name: str
    done: bool = False
    result_ref: str | None = None


class VideoJobStatus(_Frozen):
    done: bool
    result_ref: str | None = None
