from reelrender.schemas.envelope import ErrorInfo
from reelrender.schemas.render import (
    RenderCompletedEvent,
    RenderFailedEvent,
    RenderProgressEvent,
    RenderRequest,
    RenderStartedEvent,
)

__all__ = [
    "ErrorInfo",
    "RenderRequest",
    "RenderStartedEvent",
    "RenderProgressEvent",
    "RenderCompletedEvent",
    "RenderFailedEvent",
]
