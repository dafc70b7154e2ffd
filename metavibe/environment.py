"""Environment collaborators the orchestrator consumes.

    Authorizer    — is a credential selected? prompt the user to select one.
    AudioCapture  — opens a CaptureStream; the stream is the hardware handle
                    and must be closed on every exit from `capturing`.

EnvAuthorizer and BufferedCapture are the server-side implementations used by
the HTTP surface: the browser owns the microphone and uploads chunks, and the
"credential prompt" re-reads the key from `.env`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Protocol

from dotenv import load_dotenv

from metavibe.config import api_key_from_env
from metavibe.errors import AuthorizationError, CaptureError
from metavibe.models import CapturedAudio

logger = logging.getLogger(__name__)


class Authorizer(Protocol):
    async def has_authorization(self) -> bool: ...

    async def request_authorization(self) -> None: ...

    def credential(self) -> str: ...


class CaptureStream(Protocol):
    def write(self, chunk: bytes) -> None: ...

    def finalize(self) -> CapturedAudio: ...

    def close(self) -> None: ...


class AudioCapture(Protocol):
    async def open(self) -> CaptureStream: ...


# ---------------------------------------------------------------------------
# EnvAuthorizer
# ---------------------------------------------------------------------------

class EnvAuthorizer:
    """API key taken from GEMINI_API_KEY / API_KEY.

    Args:
        env_path: `.env` file re-read (with override) when a new key is
                  requested, so an operator can drop in a key without a restart.
        prompt:   optional coroutine awaited first, e.g. to notify a UI.
    """

    def __init__(
        self,
        env_path: Path | None = None,
        prompt: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._env_path = env_path
        self._prompt = prompt

    def credential(self) -> str:
        return api_key_from_env()

    async def has_authorization(self) -> bool:
        return bool(self.credential())

    async def request_authorization(self) -> None:
        logger.info("requesting credential selection")
        if self._prompt is not None:
            await self._prompt()
        if self._env_path is not None and self._env_path.is_file():
            load_dotenv(self._env_path, override=True)
        if not self.credential():
            raise AuthorizationError("No API key selected. Set GEMINI_API_KEY and try again.")


# ---------------------------------------------------------------------------
# BufferedCapture
# ---------------------------------------------------------------------------

class _BufferStream:
    def __init__(self, mime_type: str, max_bytes: int) -> None:
        self._chunks: list[bytes] = []
        self._size = 0
        self._mime_type = mime_type
        self._max_bytes = max_bytes
        self.closed = False

    def write(self, chunk: bytes) -> None:
        if self.closed:
            raise CaptureError("Capture stream is closed")
        if self._size + len(chunk) > self._max_bytes:
            raise CaptureError(f"Recording exceeds {self._max_bytes} bytes")
        if chunk:
            self._chunks.append(chunk)
            self._size += len(chunk)

    def finalize(self) -> CapturedAudio:
        return CapturedAudio(data=b"".join(self._chunks), mime_type=self._mime_type)

    def close(self) -> None:
        self.closed = True
        self._chunks = []


class BufferedCapture:
    """Collects audio chunks uploaded by the browser into one recording."""

    def __init__(self, mime_type: str = "audio/webm", max_bytes: int = 20 * 1024 * 1024) -> None:
        self._mime_type = mime_type
        self._max_bytes = max_bytes
        self._stream: _BufferStream | None = None

    async def open(self) -> _BufferStream:
        if self._stream is not None and not self._stream.closed:
            raise CaptureError("Capture device is busy")
        self._stream = _BufferStream(self._mime_type, self._max_bytes)
        return self._stream

    def feed(self, chunk: bytes) -> None:
        """Append an uploaded chunk to the open recording."""
        if self._stream is None or self._stream.closed:
            raise CaptureError("No recording in progress")
        self._stream.write(chunk)
