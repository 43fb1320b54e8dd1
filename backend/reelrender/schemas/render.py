from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from reelrender.schemas.envelope import ErrorInfo


class SegmentPayload(BaseModel):
    """One segment as sent by clients; values are validated by the pipeline."""

    model_config = ConfigDict(extra="ignore")

    image_url: str | None = Field(
        default=None, validation_alias=AliasChoices("image_url", "imageUrl", "imageSource")
    )
    duration: Any = None
    type: str | None = None
    text_overlay: str | None = Field(
        default=None, validation_alias=AliasChoices("text_overlay", "textOverlay")
    )
    text_timing: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("text_timing", "textTiming")
    )
    text_style: str | None = Field(
        default=None, validation_alias=AliasChoices("text_style", "textStyle")
    )
    highlight: dict[str, Any] | None = None


class RenderOptionsPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transition_type: Any = Field(
        default=None, validation_alias=AliasChoices("transition_type", "transitionType")
    )
    transition_duration: Any = Field(
        default=None, validation_alias=AliasChoices("transition_duration", "transitionDuration")
    )
    width: Any = None
    height: Any = None
    fps: Any = None
    canvas_policy: Any = Field(
        default=None, validation_alias=AliasChoices("canvas_policy", "canvasPolicy")
    )


class RenderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    segments: list[SegmentPayload] = Field(default_factory=list)
    audio_url: str | None = Field(
        default=None, validation_alias=AliasChoices("audio_url", "audioUrl")
    )
    options: RenderOptionsPayload | None = None

    def to_job_input(self) -> dict[str, Any]:
        """Plain dict in the shape RenderInput.from_dict() expects."""
        return {
            "segments": [segment.model_dump(exclude_none=True) for segment in self.segments],
            "audio_url": self.audio_url,
            "options": self.options.model_dump(exclude_none=True) if self.options else None,
        }


class RenderStartedEvent(BaseModel):
    success: bool = True
    job_id: str
    message: str = "Video rendering started"
    status: Literal["processing"] = "processing"


class RenderProgressEvent(BaseModel):
    stage: str
    progress: int


class RenderCompletedEvent(BaseModel):
    success: bool = True
    status: Literal["completed"] = "completed"
    job_id: str
    video_url: str
    video_size: int
    duration: float


class RenderFailedEvent(BaseModel):
    success: bool = False
    status: Literal["failed"] = "failed"
    job_id: str | None = None
    error: ErrorInfo
