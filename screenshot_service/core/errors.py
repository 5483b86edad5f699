"""
Render Errors
=============

Error kinds raised while handling a screenshot request. The API layer maps
each kind to an HTTP status; everything else is an internal error.
"""

from typing import List, Optional


class ScreenshotServiceError(Exception):
    """Base class for render pipeline errors."""

    status_code = 500
    error = "Screenshot generation failed"


class RequestValidationFailed(ScreenshotServiceError):
    """Request fields are missing, malformed or outside configured bounds."""

    status_code = 400
    error = "Invalid parameters"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class AdmissionRejected(ScreenshotServiceError):
    """The concurrency limit is reached."""

    status_code = 429
    error = "Service busy"

    def __init__(self, active: int, limit: int):
        self.active = active
        self.limit = limit
        super().__init__("Too many concurrent requests. Please try again later.")


class EngineUnavailable(ScreenshotServiceError):
    """The browser could not be launched or relaunched."""

    error = "Browser unavailable"


class RenderTimeout(ScreenshotServiceError):
    """A render stage exceeded its budget."""

    def __init__(self, stage: str, timeout_ms: Optional[float] = None):
        self.stage = stage
        self.timeout_ms = timeout_ms
        suffix = f" after {timeout_ms:.0f}ms" if timeout_ms is not None else ""
        super().__init__(f"{stage} timed out{suffix}")


class CaptureFailure(ScreenshotServiceError):
    """The final capture or encode step failed."""
