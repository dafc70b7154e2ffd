"""FastAPI endpoints under /api for the single live session.

The browser records audio and uploads it in chunks while the session is
capturing; it reads progress by polling GET /api/session.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from metavibe.errors import CaptureError, SessionBusyError
from metavibe.models import SessionSnapshot
from metavibe.pipeline.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


@router.get("/session", response_model=SessionSnapshot)
async def get_session(request: Request):
    """Current session snapshot."""
    return _orchestrator(request).snapshot


@router.post("/session/start", response_model=SessionSnapshot)
async def start_session(request: Request):
    """Check the credential and open the recording."""
    try:
        return await _orchestrator(request).start()
    except SessionBusyError as e:
        raise HTTPException(409, str(e))


@router.post("/session/audio")
async def append_audio(request: Request):
    """Append a raw audio chunk to the open recording."""
    chunk = await request.body()
    try:
        request.app.state.capture.feed(chunk)
    except CaptureError as e:
        raise HTTPException(409, str(e))
    return {"ok": True, "bytes": len(chunk)}


@router.post("/session/stop", response_model=SessionSnapshot)
async def stop_session(request: Request):
    """Close the recording and run generation in the background."""
    orchestrator = _orchestrator(request)
    try:
        orchestrator.stop()
    except SessionBusyError as e:
        raise HTTPException(409, str(e))
    except CaptureError as e:
        # Session is now failed; the snapshot carries the message
        logger.warning("recording not finalized: %s", e)
    return orchestrator.snapshot


@router.post("/session/reset", response_model=SessionSnapshot)
async def reset_session(request: Request):
    """Discard the current result and return to idle."""
    try:
        return _orchestrator(request).reset()
    except SessionBusyError as e:
        raise HTTPException(409, str(e))
