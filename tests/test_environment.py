"""Tests for metavibe.environment — EnvAuthorizer and BufferedCapture."""

import pytest

from metavibe.environment import BufferedCapture, EnvAuthorizer
from metavibe.errors import AuthorizationError, CaptureError


@pytest.fixture
def no_key(monkeypatch):
    # setenv (not delenv) so values written by load_dotenv are rolled back too
    monkeypatch.setenv("GEMINI_API_KEY", "")
    monkeypatch.setenv("API_KEY", "")


class TestEnvAuthorizer:
    async def test_authorized_when_key_set(self, monkeypatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "abc")
        auth = EnvAuthorizer()
        assert await auth.has_authorization()
        assert auth.credential() == "abc"

    async def test_not_authorized_without_key(self, no_key) -> None:
        assert not await EnvAuthorizer().has_authorization()

    async def test_request_reads_env_file(self, no_key, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("GEMINI_API_KEY=from-file\n")
        auth = EnvAuthorizer(env_file)
        await auth.request_authorization()
        assert auth.credential() == "from-file"

    async def test_request_without_key_raises(self, no_key, tmp_path) -> None:
        auth = EnvAuthorizer(tmp_path / "missing.env")
        with pytest.raises(AuthorizationError, match="No API key selected"):
            await auth.request_authorization()

    async def test_prompt_awaited(self, monkeypatch) -> None:
        prompted: list[bool] = []

        async def prompt() -> None:
            prompted.append(True)
            monkeypatch.setenv("GEMINI_API_KEY", "picked")

        monkeypatch.setenv("GEMINI_API_KEY", "")
        auth = EnvAuthorizer(prompt=prompt)
        await auth.request_authorization()
        assert prompted == [True]
        assert auth.credential() == "picked"


class TestBufferedCapture:
    async def test_chunks_joined(self) -> None:
        capture = BufferedCapture(mime_type="audio/ogg")
        stream = await capture.open()
        capture.feed(b"ab")
        capture.feed(b"")
        capture.feed(b"cd")
        audio = stream.finalize()
        assert audio.data == b"abcd"
        assert audio.mime_type == "audio/ogg"

    async def test_open_while_open_is_busy(self) -> None:
        capture = BufferedCapture()
        await capture.open()
        with pytest.raises(CaptureError, match="busy"):
            await capture.open()

    async def test_reopen_after_close(self) -> None:
        capture = BufferedCapture()
        first = await capture.open()
        capture.feed(b"old")
        first.close()
        second = await capture.open()
        assert second.finalize().data == b""

    async def test_feed_without_recording(self) -> None:
        with pytest.raises(CaptureError, match="No recording"):
            BufferedCapture().feed(b"x")

    async def test_feed_after_close(self) -> None:
        capture = BufferedCapture()
        stream = await capture.open()
        stream.close()
        with pytest.raises(CaptureError):
            capture.feed(b"x")

    async def test_size_limit(self) -> None:
        capture = BufferedCapture(max_bytes=4)
        await capture.open()
        capture.feed(b"abc")
        with pytest.raises(CaptureError, match="exceeds 4 bytes"):
            capture.feed(b"de")
