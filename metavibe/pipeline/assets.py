"""Asset generation steps and their retry policy.

  generate_art    — primary image model, then one retry on the fallback model.
  generate_speech — single attempt.
  generate_video  — submit, poll until done, append the access key. A
                    permission-shaped failure triggers one credential prompt
                    and one full resubmission; anything else yields None.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from metavibe.config import Settings
from metavibe.environment import Authorizer
from metavibe.errors import AuthorizationError, VideoError, is_permission_error
from metavibe.models import VideoJobStatus
from metavibe.provider import CapabilityProvider

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def generate_art(provider: CapabilityProvider, prompt: str, settings: Settings) -> bytes:
    try:
        return await provider.generate_image(
            prompt, model=settings.image_model, aspect_ratio="1:1", image_size="1K",
        )
    except Exception as e:
        logger.warning(
            "image model %s failed, falling back to %s: %s",
            settings.image_model, settings.image_fallback_model, e,
        )
    return await provider.generate_image(
        prompt, model=settings.image_fallback_model, aspect_ratio="1:1",
    )


async def generate_speech(
    provider: CapabilityProvider, text: str, voice: str, settings: Settings,
) -> bytes:
    return await provider.generate_speech(text, voice or settings.default_voice)


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------

def with_access_key(ref: str, key: str) -> str:
    """Append the credential as a `key` query parameter."""
    if not key:
        return ref
    return str(httpx.URL(ref).copy_merge_params({"key": key}))


async def _submit_and_poll(
    provider: CapabilityProvider,
    authorizer: Authorizer,
    prompt: str,
    settings: Settings,
    sleep: Sleep,
) -> str | None:
    job = await provider.submit_video_job(prompt)
    status = VideoJobStatus(done=job.done, result_ref=job.result_ref)
    polls = 0
    while not status.done:
        if polls >= settings.video_max_polls:
            raise VideoError(f"Video job {job.name} not done after {polls} polls")
        await sleep(settings.video_poll_interval)
        status = await provider.poll_video_job(job)
        polls += 1
    logger.info("video job %s done after %d polls", job.name, polls)
    if not status.result_ref:
        return None
    return with_access_key(status.result_ref, authorizer.credential())


async def generate_video(
    provider: CapabilityProvider,
    authorizer: Authorizer,
    prompt: str,
    settings: Settings,
    sleep: Sleep = asyncio.sleep,
) -> str | None:
    """Best-effort video generation. Never raises VideoError."""
    try:
        return await _submit_and_poll(provider, authorizer, prompt, settings, sleep)
    except VideoError as e:
        logger.error("video generation failed: %s", e)
        if not is_permission_error(e):
            return None

    logger.info("video permission missing, prompting for a new credential")
    try:
        await authorizer.request_authorization()
        return await _submit_and_poll(provider, authorizer, prompt, settings, sleep)
    except (VideoError, AuthorizationError) as e:
        logger.error("video retry after credential prompt failed: %s", e)
        return None
