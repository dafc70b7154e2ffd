import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from metavibe.config import Settings, load_settings
from metavibe.environment import BufferedCapture, EnvAuthorizer
from metavibe.pipeline.orchestrator import Orchestrator
from metavibe.provider import GeminiProvider, OfflineProvider
from metavibe.routes import router

ENV_PATH = Path(__file__).parent.parent / ".env"
STATIC_DIR = Path(__file__).parent / "static"

load_dotenv(ENV_PATH)
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())


def build_orchestrator(settings: Settings, capture: BufferedCapture) -> Orchestrator:
    authorizer = EnvAuthorizer(ENV_PATH)
    if settings.provider == "offline":
        provider = OfflineProvider()
    else:
        provider = GeminiProvider(settings, authorizer.credential)
    return Orchestrator(
        provider=provider, capture=capture, authorizer=authorizer, settings=settings,
    )


def create_app(
    settings: Settings | None = None,
    orchestrator: Orchestrator | None = None,
    capture: BufferedCapture | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    capture = capture or BufferedCapture()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        yield
        # Background video jobs must not outlive the event loop
        await app.state.orchestrator.shutdown()

    app = FastAPI(title="MetaVibe", lifespan=lifespan)
    app.state.capture = capture
    app.state.orchestrator = orchestrator or build_orchestrator(settings, capture)
    app.include_router(router, prefix="/api")

    if STATIC_DIR.exists():
        # Built frontend, served as a single page app
        app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")

    return app


# Default app instance for uvicorn (settings from env / .env)
app = create_app()
