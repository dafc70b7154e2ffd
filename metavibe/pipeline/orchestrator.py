"""Session orchestrator — drives one capture-to-showcase session.

Phase flow:
  idle ──start()──▶ capturing ──stop()──▶ analyzing ──▶ composing_assets ──▶ ready
                                              │                │
                                              └──────▶ failed ◀┘
  ready / failed ──reset()──▶ idle

  1. start(): make sure a credential is selected, then open the capture
     stream. Authorization or capture failures stay in `idle` with an error
     message.
  2. stop(): finalize the recording and close the stream (always), then
     spawn the pipeline task:
       a. analyze the audio → publish the personality right away.
       b. art and speech run concurrently; both must succeed.
       c. publish all assets at once (no video yet) → `ready`.
       d. spawn the video task; its result is merged into the snapshot
          only if the same session is still `ready`.

Every transition replaces the frozen SessionSnapshot and notifies listeners.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from metavibe.config import Settings
from metavibe.environment import AudioCapture, Authorizer, CaptureStream
from metavibe.errors import AuthorizationError, CaptureError, MetaVibeError, SessionBusyError
from metavibe.models import (
    STATUS_MESSAGES,
    CapturedAudio,
    GeneratedAssets,
    Phase,
    SessionSnapshot,
)
from metavibe.pipeline.assets import Sleep, generate_art, generate_speech, generate_video
from metavibe.provider import CapabilityProvider

logger = logging.getLogger(__name__)

Listener = Callable[[SessionSnapshot], None]

_IN_FLIGHT = (Phase.ANALYZING, Phase.COMPOSING_ASSETS)


class Orchestrator:
    def __init__(
        self,
        *,
        provider: CapabilityProvider,
        capture: AudioCapture,
        authorizer: Authorizer,
        settings: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._capture = capture
        self._authorizer = authorizer
        self._settings = settings or Settings()
        self._sleep = sleep
        self._snapshot = SessionSnapshot()
        self._listeners: list[Listener] = []
        self._stream: CaptureStream | None = None
        self._starting = False
        self._pipeline_task: asyncio.Task[SessionSnapshot] | None = None
        self._video_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Snapshot publishing
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for every published snapshot. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, snapshot: SessionSnapshot) -> SessionSnapshot:
        self._snapshot = snapshot
        logger.info(
            "session=%d phase=%s status=%r",
            snapshot.session_id, snapshot.phase.value, snapshot.status_message,
        )
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("snapshot listener failed")
        return snapshot

    def _publish(self, **changes) -> SessionSnapshot:
        if "phase" in changes and "status_message" not in changes:
            changes["status_message"] = STATUS_MESSAGES[changes["phase"]]
        return self._emit(self._snapshot.model_copy(update=changes))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self) -> SessionSnapshot:
        """idle → capturing. Failures keep the session idle with an error message."""
        if self._starting:
            raise SessionBusyError("A session is already starting")
        if self._snapshot.phase is not Phase.IDLE:
            raise SessionBusyError(f"Cannot start a session while {self._snapshot.phase.value}")
        self._starting = True
        try:
            if not await self._authorizer.has_authorization():
                await self._authorizer.request_authorization()
            stream = await self._capture.open()
        except (AuthorizationError, CaptureError) as e:
            logger.warning("capture not started: %s", e)
            return self._publish(error_message=str(e))
        finally:
            self._starting = False
        self._stream = stream
        return self._publish(phase=Phase.CAPTURING, error_message=None)

    def stop(self) -> asyncio.Task[SessionSnapshot]:
        """capturing → analyzing. Releases the capture stream before returning.

        Returns the pipeline task; await it for the `ready`/`failed` snapshot.
        If the recording cannot be finalized the session moves to `failed`
        and the error is re-raised.
        """
        if self._snapshot.phase is not Phase.CAPTURING or self._stream is None:
            raise SessionBusyError(f"Cannot stop a session while {self._snapshot.phase.value}")
        stream, self._stream = self._stream, None
        try:
            audio = stream.finalize()
        except Exception as e:
            self._fail(str(e) or "Recording could not be finalized")
            raise
        finally:
            stream.close()
        self._publish(phase=Phase.ANALYZING)
        self._pipeline_task = asyncio.create_task(
            self._run_pipeline(self._snapshot.session_id, audio)
        )
        return self._pipeline_task

    def reset(self) -> SessionSnapshot:
        """Back to a clean idle session. Not allowed while the pipeline is running."""
        if self._snapshot.phase in _IN_FLIGHT:
            raise SessionBusyError(f"Cannot reset while {self._snapshot.phase.value}")
        if self._stream is not None:
            stream, self._stream = self._stream, None
            stream.close()
        return self._emit(SessionSnapshot(session_id=self._snapshot.session_id + 1))

    async def wait_for_enrichment(self) -> None:
        """Wait for every background video task still in flight."""
        if self._video_tasks:
            await asyncio.gather(*list(self._video_tasks))

    async def shutdown(self) -> None:
        """Cancel the pipeline and video tasks and wait for them to unwind."""
        tasks = [t for t in (self._pipeline_task, *self._video_tasks) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("cancelled %d background task(s) on shutdown", len(tasks))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(self, session_id: int, audio: CapturedAudio) -> SessionSnapshot:
        try:
            analysis = await self._provider.analyze(audio.data, audio.mime_type)
            self._publish(phase=Phase.COMPOSING_ASSETS, personality=analysis.personality)

            art, speech = await asyncio.gather(
                generate_art(self._provider, analysis.art.prompt, self._settings),
                generate_speech(
                    self._provider, analysis.story.narrative,
                    analysis.tts.voice_name, self._settings,
                ),
            )
        except MetaVibeError as e:
            return self._fail(str(e))
        except Exception as e:
            logger.exception("pipeline crashed")
            return self._fail(str(e) or "Something went wrong during generation.")

        assets = GeneratedAssets(
            art_prompt=analysis.art.prompt,
            art_image=art,
            story_text=analysis.story.narrative,
            music=analysis.music,
            video_uri=None,
            speech_audio=speech,
        )
        snapshot = self._publish(phase=Phase.READY, assets=assets)
        task = asyncio.create_task(self._enrich_with_video(session_id, analysis.video.prompt))
        self._video_tasks.add(task)
        task.add_done_callback(self._video_tasks.discard)
        return snapshot

    def _fail(self, message: str) -> SessionSnapshot:
        logger.error("session=%d failed: %s", self._snapshot.session_id, message)
        return self._publish(phase=Phase.FAILED, assets=None, error_message=message)

    async def _enrich_with_video(self, session_id: int, prompt: str) -> None:
        try:
            uri = await generate_video(
                self._provider, self._authorizer, prompt, self._settings, self._sleep,
            )
        except Exception:
            logger.exception("background video task crashed")
            return
        if uri is None:
            logger.warning("session=%d continues without video", session_id)
            return
        self._merge_video(session_id, uri)

    def _merge_video(self, session_id: int, uri: str) -> bool:
        current = self._snapshot
        if (
            current.session_id != session_id
            or current.phase is not Phase.READY
            or current.assets is None
            or current.assets.video_uri is not None
        ):
            logger.info("discarding video for stale session=%d", session_id)
            return False
        self._publish(assets=current.assets.model_copy(update={"video_uri": uri}))
        return True
