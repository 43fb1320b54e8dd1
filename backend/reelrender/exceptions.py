"""Custom exceptions for the reelrender service.

Every render stage raises a subclass of ReelRenderError carrying a
machine-readable code and the stage it failed in, so the job result stream
can report a structured error with a suggested fix.
"""

from reelrender.constants.error_codes import get_error_spec
from reelrender.schemas.envelope import ErrorInfo


class ReelRenderError(Exception):
    """Base exception for all reelrender errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        stage: str | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        self.stage = stage
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for the job result."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            code=self.code,
            message=self.message,
            stage=self.stage,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
        )


# =============================================================================
# Input Errors (400)
# =============================================================================


class InputValidationError(ReelRenderError):
    """Job input is missing segments or the audio reference."""

    code = "INPUT_VALIDATION_ERROR"
    status_code = 400
    message = "Invalid render request"


# =============================================================================
# Pipeline Stage Errors (500)
# =============================================================================


class RetrievalError(ReelRenderError):
    """An image or the audio track could not be downloaded."""

    code = "RETRIEVAL_ERROR"
    status_code = 502
    message = "Failed to download media"

    def __init__(
        self,
        message: str | None = None,
        *,
        url: str | None = None,
        status: int | None = None,
        stage: str | None = None,
    ):
        self.url = url
        self.status = status
        super().__init__(message, stage=stage)


class SynthesisError(ReelRenderError):
    """A per-segment clip could not be synthesized."""

    code = "SYNTHESIS_ERROR"
    message = "Failed to create clip"

    def __init__(
        self,
        message: str | None = None,
        *,
        segment_index: int | None = None,
        stage: str | None = None,
    ):
        self.segment_index = segment_index
        if message is None and segment_index is not None:
            message = f"Failed to create clip {segment_index}"
        super().__init__(message, stage=stage)


class ConcatenationError(ReelRenderError):
    """Clips could not be joined into one video."""

    code = "CONCATENATION_ERROR"
    message = "Failed to concatenate clips"


class DurationProbeError(ReelRenderError):
    """The authoritative audio duration could not be determined."""

    code = "DURATION_PROBE_ERROR"
    message = "Failed to get audio duration - cannot proceed safely"


class MuxError(ReelRenderError):
    """Video and audio could not be combined."""

    code = "MUX_ERROR"
    message = "Failed to add audio"


class ValidationError(ReelRenderError):
    """The muxed artifact failed its integrity checks."""

    code = "VALIDATION_ERROR"
    message = "Video validation failed"


# =============================================================================
# Engine Errors
# =============================================================================


class ProcessError(ReelRenderError):
    """The external media tool exited unsuccessfully."""

    code = "PROCESS_ERROR"
    message = "FFmpeg process failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        return_code: int | None = None,
        stderr_tail: list[str] | None = None,
        stdout_tail: list[str] | None = None,
    ):
        self.return_code = return_code
        self.stderr_tail = stderr_tail or []
        self.stdout_tail = stdout_tail or []
        super().__init__(message)


class ProcessTimeoutError(ProcessError):
    """The external media tool exceeded its wall-clock timeout."""

    code = "PROCESS_TIMEOUT"
    message = "FFmpeg command timed out"


class MediaProbeError(ReelRenderError):
    """ffprobe failed or returned unusable output."""

    code = "MEDIA_PROBE_ERROR"
    message = "ffprobe failed"


class FilterGraphError(ReelRenderError):
    """A filter graph was assembled inconsistently (e.g. duplicate pad names)."""

    code = "FILTER_GRAPH_ERROR"
    message = "Invalid filter graph"
