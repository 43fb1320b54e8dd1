"""Error codes dictionary for render job failures.

This is the single source of truth for all error codes, their retryability,
and suggested fixes. Used by ReelRenderError.to_error_info() to generate
machine-readable failure payloads for the job result stream.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Input errors (not retryable, fix input)
    # ==========================================================================
    "INPUT_VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Send a non-empty segments array and an audio_url",
    },
    # ==========================================================================
    # Retrieval errors (retryable, the source may be temporarily unavailable)
    # ==========================================================================
    "RETRIEVAL_ERROR": {
        "retryable": True,
        "suggested_fix": "Check that every image_url and the audio_url are publicly reachable",
    },
    # ==========================================================================
    # Render stage errors
    # ==========================================================================
    "SYNTHESIS_ERROR": {
        "retryable": False,
        "suggested_fix": "Check that every segment image is a decodable image file",
    },
    "CONCATENATION_ERROR": {
        "retryable": True,
    },
    "DURATION_PROBE_ERROR": {
        "retryable": False,
        "suggested_fix": "Check that the audio file is a valid, non-empty audio stream",
    },
    "MUX_ERROR": {
        "retryable": True,
    },
    "VALIDATION_ERROR": {
        "retryable": True,
        "suggested_fix": "The rendered file failed integrity checks; retry the render",
    },
    # ==========================================================================
    # Engine errors
    # ==========================================================================
    "PROCESS_ERROR": {
        "retryable": False,
    },
    "PROCESS_TIMEOUT": {
        "retryable": True,
        "suggested_fix": "Reduce the number of segments or use transition_type 'none'",
    },
    "MEDIA_PROBE_ERROR": {
        "retryable": False,
    },
    "FILTER_GRAPH_ERROR": {
        "retryable": False,
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Unknown codes fall back to INTERNAL_ERROR.
    """
    return ERROR_CODES.get(code, ERROR_CODES["INTERNAL_ERROR"])
