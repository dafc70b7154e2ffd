"""Handlebars prompt rendering for the analysis call."""

from collections.abc import Callable
from typing import Any

import pybars

from metavibe.config import VOICES

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def _helper_join(this, items, sep=", "):
    """{{join array ", "}} — join items into one string."""
    return sep.join(str(i) for i in items)


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


ANALYSIS_INSTRUCTION = """\
You are {{name}}, a synesthetic AI engine.
Analyze the speaker's voice, tone, pace, and language to construct a deep personality profile.

Output strictly valid JSON adhering to this schema:
{
  "personality": {
    "traits": ["string"],
    "energy": number ({{energy.min}}-{{energy.max}}),
    "mood": "string",
    "colors": { "primary": "hex", "secondary": "hex", "accent": "hex" }
  },
  "music": {
    "genre": "string",
    "bpm": number,
    "instruments": ["string"],
    "vibe": "string"
  },
  "art": {
    "prompt": "string (highly descriptive for image gen)",
    "style": "string"
  },
  "story": {
    "narrative": "string (2-3 sentences max, strictly related to the user's vibe, referring to 'You')"
  },
  "video": {
    "prompt": "string (cinematic prompt for video gen)"
  },
  "tts": {
    "voice_name": "string (choose from: {{{join voices ", "}}})",
    "speaking_rate": number (0.8 to 1.3),
    "pitch": "string (low, medium, high)"
  }
}
{{#each hints}}
{{{this}}}
{{/each}}"""

ANALYSIS_REQUEST = "Analyze this audio and generate the MetaVibe profile."

_HINTS = [
    "If the user sounds shy: use soft colors, low BPM, lofi/ambient music, calm voice.",
    "If the user sounds energetic: use neon colors, high BPM, EDM/Rock, fast voice.",
    "Be creative with the art prompt (e.g., 'A cyberpunk samurai in a neon rain' for energetic, "
    "'A watercolor cottage in a misty forest' for shy).",
]


def analysis_instruction(voices: tuple[str, ...] = VOICES) -> str:
    return render_prompt(ANALYSIS_INSTRUCTION, {
        "name": "MetaVibe",
        "energy": {"min": 1, "max": 10},
        "voices": list(voices),
        "hints": _HINTS,
    })
