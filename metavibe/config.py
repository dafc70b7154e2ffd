"""Runtime settings read from the environment (and `.env`, loaded by the app)."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel

ProviderKind = Literal["gemini", "offline"]

VOICES = ("Puck", "Charon", "Kore", "Fenrir", "Zephyr")


class Settings(BaseModel):
    provider: ProviderKind = "gemini"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    analysis_model: str = "gemini-2.5-flash"
    image_model: str = "gemini-3-pro-image-preview"
    image_fallback_model: str = "gemini-2.5-flash-image"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    video_model: str = "veo-3.1-fast-generate-preview"
    video_poll_interval: float = 5.0
    video_max_polls: int = 120  # ten minutes at the default interval
    default_voice: str = "Puck"
    http_timeout: float = 120.0


def api_key_from_env() -> str:
    return os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", "")


def load_settings() -> Settings:
    """Build Settings from environment variables, keeping defaults for unset ones."""
    env_map = {
        "provider": "METAVIBE_PROVIDER",
        "base_url": "GEMINI_BASE_URL",
        "analysis_model": "ANALYSIS_MODEL",
        "image_model": "IMAGE_MODEL",
        "image_fallback_model": "IMAGE_FALLBACK_MODEL",
        "tts_model": "TTS_MODEL",
        "video_model": "VIDEO_MODEL",
        "video_poll_interval": "VIDEO_POLL_INTERVAL",
        "video_max_polls": "VIDEO_MAX_POLLS",
        "default_voice": "DEFAULT_VOICE",
        "http_timeout": "HTTP_TIMEOUT",
    }
    fields = {name: os.environ[var] for name, var in env_map.items() if os.getenv(var)}
    return Settings.model_validate(fields)
