"""MetaVibe — turns a short voice clip into a generated vibe card."""

__version__ = "0.1.0"
