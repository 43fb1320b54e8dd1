"""Job data model: segments, render options and clips.

Raw job input is parsed exactly once, at job start. Options are lenient
(anything missing or invalid falls back to its default); structural input
problems (no segments, no audio reference) raise InputValidationError.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from reelrender.config import get_settings
from reelrender.exceptions import InputValidationError

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT_DURATION_S = 3.0


class CanvasPolicy(Enum):
    """How a source image is fitted to the output frame before motion."""

    PAD = "pad"  # show the full image, letterbox the rest
    CROP = "crop"  # fill the frame, crop the overflow


def _positive_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _positive_int(value: Any) -> Optional[int]:
    number = _positive_float(value)
    if number is None or number != int(number):
        return None
    return int(number)


@dataclass(frozen=True)
class TextTiming:
    """Window (relative to the clip) in which a segment's text is visible."""

    start: float = 0.0
    duration: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["TextTiming"]:
        if not isinstance(data, dict):
            return None
        start = data.get("start", 0.0)
        try:
            start = max(0.0, float(start))
        except (TypeError, ValueError):
            start = 0.0
        if not math.isfinite(start):
            start = 0.0
        return cls(start=start, duration=_positive_float(data.get("duration")))


@dataclass(frozen=True)
class HighlightConfig:
    """Animated indicator over a region of the frame.

    Coordinates are normalized to the frame (0-1).
    """

    kind: str = "pulse-circle"
    x: float = 0.4
    y: float = 0.4
    width: float = 0.2
    height: float = 0.2
    color: str = "#FFD400"
    pulses_duration: Optional[float] = None
    pulse_count: int = 2

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["HighlightConfig"]:
        if not isinstance(data, dict):
            return None
        base = cls()

        def unit(key: str, default: float) -> float:
            try:
                value = float(data.get(key, default))
            except (TypeError, ValueError):
                return default
            return min(max(value, 0.0), 1.0) if math.isfinite(value) else default

        color = data.get("color")
        if not (isinstance(color, str) and len(color) == 7 and color.startswith("#")):
            color = base.color
        count = _positive_int(data.get("pulse_count")) or base.pulse_count

        return cls(
            kind=str(data.get("kind") or base.kind),
            x=unit("x", base.x),
            y=unit("y", base.y),
            width=unit("width", base.width),
            height=unit("height", base.height),
            color=color,
            pulses_duration=_positive_float(data.get("pulses_duration")),
            pulse_count=count,
        )


@dataclass(frozen=True)
class Segment:
    """One timed image with optional text overlay."""

    index: int
    image_url: str
    duration: float = DEFAULT_SEGMENT_DURATION_S
    type: str = "feature"
    text_overlay: Optional[str] = None
    text_timing: Optional[TextTiming] = None
    # "box" (boxed caption) or "bold" (animated headline)
    text_style: str = "box"
    highlight: Optional[HighlightConfig] = None

    @classmethod
    def from_dict(
        cls,
        index: int,
        data: dict[str, Any],
        default_duration: float = DEFAULT_SEGMENT_DURATION_S,
    ) -> "Segment":
        if not isinstance(data, dict):
            raise InputValidationError(f"Segment {index} must be an object")

        image_url = data.get("image_url")
        if not image_url or not isinstance(image_url, str):
            raise InputValidationError(f"Segment {index} is missing image_url")

        duration = _positive_float(data.get("duration"))
        if duration is None:
            if data.get("duration") is not None:
                logger.warning(
                    f"[RENDER] Segment {index} has invalid duration "
                    f"{data.get('duration')!r}, using {default_duration}s"
                )
            duration = default_duration

        text = data.get("text_overlay")
        if text is not None and not isinstance(text, str):
            text = str(text)

        return cls(
            index=index,
            image_url=image_url,
            duration=duration,
            type=str(data.get("type") or "feature"),
            text_overlay=text or None,
            text_timing=TextTiming.from_dict(data.get("text_timing")),
            text_style="bold" if data.get("text_style") == "bold" else "box",
            highlight=HighlightConfig.from_dict(data.get("highlight")),
        )


@dataclass(frozen=True)
class RenderOptions:
    """Per-job render options; every field has a default."""

    transition_type: str = "crossfade"
    transition_duration: float = 0.5
    width: int = 1080
    height: int = 1920
    fps: int = 30
    canvas_policy: CanvasPolicy = CanvasPolicy.PAD

    @classmethod
    def defaults(cls) -> "RenderOptions":
        settings = get_settings()
        return cls(
            transition_type=settings.render_transition_type,
            transition_duration=settings.render_transition_duration_s,
            width=settings.render_output_width,
            height=settings.render_output_height,
            fps=settings.render_fps,
            canvas_policy=CanvasPolicy(settings.canvas_policy),
        )

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "RenderOptions":
        """Parse options, falling back field-by-field to the configured defaults."""
        base = cls.defaults()
        if not data:
            return base
        if not isinstance(data, dict):
            logger.warning(f"[RENDER] Ignoring non-object render options: {data!r}")
            return base

        def pick(key: str, parser, default):
            if data.get(key) is None:
                return default
            value = parser(data[key])
            if value is None:
                logger.warning(
                    f"[RENDER] Invalid option {key}={data[key]!r}, using default {default!r}"
                )
                return default
            return value

        transition_type = data.get("transition_type")
        if not isinstance(transition_type, str) or not transition_type.strip():
            transition_type = base.transition_type

        return cls(
            transition_type=transition_type.strip().lower(),
            transition_duration=pick("transition_duration", _positive_float, base.transition_duration),
            width=pick("width", _positive_int, base.width),
            height=pick("height", _positive_int, base.height),
            fps=pick("fps", _positive_int, base.fps),
            canvas_policy=pick("canvas_policy", _parse_canvas_policy, base.canvas_policy),
        )


def _parse_canvas_policy(value: Any) -> Optional[CanvasPolicy]:
    if isinstance(value, CanvasPolicy):
        return value
    try:
        return CanvasPolicy(str(value).lower())
    except ValueError:
        return None


@dataclass
class RenderInput:
    """Validated job input."""

    segments: list[Segment]
    audio_url: str
    options: RenderOptions = field(default_factory=RenderOptions.defaults)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RenderInput":
        if not isinstance(data, dict):
            raise InputValidationError("Render request must be an object")

        raw_segments = data.get("segments")
        if not isinstance(raw_segments, list) or not raw_segments:
            raise InputValidationError("Missing or empty segments array")

        audio_url = data.get("audio_url")
        if not audio_url or not isinstance(audio_url, str):
            raise InputValidationError("Missing audio_url")

        default_duration = get_settings().render_segment_default_duration_s
        segments = [
            Segment.from_dict(i, raw, default_duration) for i, raw in enumerate(raw_segments)
        ]
        return cls(
            segments=segments,
            audio_url=audio_url,
            options=RenderOptions.from_dict(data.get("options")),
        )

    @property
    def estimated_duration(self) -> float:
        """Sum of segment durations; used until the audio is probed."""
        return sum(segment.duration for segment in self.segments)


@dataclass(frozen=True)
class Clip:
    """A synthesized per-segment video file."""

    path: Path
    segment_index: int
    duration: float
