"""Error taxonomy for an export run.

Every failure of a run surfaces as one of these. None of them are retried
inside a run; the caller re-runs the whole process if it wants another try.
"""

from typing import Optional


class ExportError(Exception):
    """Base class for all run failures."""


class ConfigError(ExportError):
    """Required input is missing or malformed. Raised before a browser starts."""


class UIInteractionError(ExportError):
    """An expected element never appeared or never became clickable."""


class CaptureError(ExportError):
    """No artifact was observed, or the observed one had no usable body."""


class DeliveryError(ExportError):
    """The webhook sink rejected the upload or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ''):
        super().__init__(message)
        self.status = status
        self.body = body[:500]
