"""Generation pipeline: the session state machine and its asset steps."""

from .assets import generate_art, generate_speech, generate_video  # noqa: F401
from .orchestrator import Orchestrator  # noqa: F401
