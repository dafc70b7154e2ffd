"""Error taxonomy and permission-failure classification.

Fatal to a session:    AnalysisError, ImageError, SpeechError
Handled in `idle`:     AuthorizationError, CaptureError
Never surfaced:        VideoError (background enrichment only)
Illegal transitions:   SessionBusyError
"""

from __future__ import annotations

import json
from typing import Any, NamedTuple

ENTITY_NOT_FOUND = "Requested entity was not found"


class MetaVibeError(RuntimeError):
    """Base class for every error raised by metavibe."""


class AuthorizationError(MetaVibeError):
    """No usable credential is selected, or the prompt to select one failed."""


class CaptureError(MetaVibeError):
    """The audio capture device could not be opened or read."""


class AnalysisError(MetaVibeError):
    """The analysis call failed or returned an unparsable payload."""


class ImageError(MetaVibeError):
    """No image could be produced, even after the fallback model."""


class SpeechError(MetaVibeError):
    """Speech synthesis failed or returned no audio."""


class VideoError(MetaVibeError):
    """Video submission or polling failed.

    `status` and `code` mirror the provider's error body when one is
    available, e.g. status="NOT_FOUND", code=404.
    """

    def __init__(self, message: str, *, status: str | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class SessionBusyError(MetaVibeError):
    """The requested action is not allowed in the current phase."""


# ---------------------------------------------------------------------------
# Permission-failure classification
# ---------------------------------------------------------------------------

class ErrorShape(NamedTuple):
    status: str | None
    code: int | None
    message: str


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_error(exc: BaseException) -> ErrorShape:
    """Reduce any exception to (status, code, message text).

    The message text folds in the serialised attributes as well as str(exc),
    since providers bury the useful part in different places.
    """
    status = getattr(exc, "status", None)
    code = _as_int(getattr(exc, "code", None))
    parts = [str(exc)]
    attrs = getattr(exc, "__dict__", None)
    if attrs:
        parts.append(json.dumps(attrs, default=str))
    return ErrorShape(
        status=str(status) if status is not None else None,
        code=code,
        message=" ".join(parts),
    )


def is_permission_error(exc: BaseException) -> bool:
    """True if the error looks like a missing entity / permission problem.

    Any one of the three signals is enough.
    """
    shape = normalize_error(exc)
    return (
        shape.status == "NOT_FOUND"
        or shape.code == 404
        or ENTITY_NOT_FOUND in shape.message
    )
