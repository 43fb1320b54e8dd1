"""Segment text overlays.

Features:
- Per segment-type styling (size, wrap width, vertical placement)
- Greedy word wrap with explicit line breaks preserved
- Boxed white text, horizontally centered, clamped to the frame
- Visibility window from the segment's text timing
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from reelrender.render.expressions import enable_between
from reelrender.render.filter_graph import (
    FilterChain,
    escape_drawtext_text,
    escape_option_value,
)
from reelrender.render.models import Segment, TextTiming
from reelrender.render.overlays import AnimationTiming, OverlayTextStyle, build_bold_text

if TYPE_CHECKING:
    from reelrender.services.font_resolver import FontResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentTextStyle:
    """Text styling for one segment type."""

    font_size: int
    max_chars_per_line: int
    y: Union[int, str]
    font_color: str = "white"
    box_color: str = "black@0.85"
    box_border: int = 14

    @property
    def line_spacing(self) -> int:
        return max(8, int(self.font_size * 0.2))


DEFAULT_TEXT_STYLE = SegmentTextStyle(font_size=38, max_chars_per_line=32, y=100)

TEXT_STYLES: dict[str, SegmentTextStyle] = {
    "opener": SegmentTextStyle(font_size=42, max_chars_per_line=30, y=60),
    "feature": DEFAULT_TEXT_STYLE,
    "cta": SegmentTextStyle(font_size=52, max_chars_per_line=25, y="h-th-150"),
}

# Segment type -> font use case
FONT_USE_CASES: dict[str, str] = {
    "opener": "title",
    "feature": "feature",
    "price": "price",
    "cta": "cta",
}


def get_text_style(segment_type: str) -> SegmentTextStyle:
    return TEXT_STYLES.get(segment_type, DEFAULT_TEXT_STYLE)


def get_font_use_case(segment_type: str) -> str:
    return FONT_USE_CASES.get(segment_type, "general")


def wrap_text(text: str, max_chars: int) -> str:
    """Greedy word wrap.

    Each explicit line is wrapped on its own. A word longer than max_chars
    is never split; it gets a line to itself.

    Args:
        text: Text to wrap, may contain newlines
        max_chars: Maximum characters per line

    Returns:
        Wrapped text joined with newlines
    """
    wrapped: list[str] = []
    for raw_line in text.split("\n"):
        wrapped.extend(_wrap_line(raw_line, max_chars))
    return "\n".join(wrapped)


def _wrap_line(line: str, max_chars: int) -> list[str]:
    words = line.split()
    if not words:
        return [""]

    lines: list[str] = []
    current = ""
    for word in words:
        if not current:
            current = word
        elif len(f"{current} {word}") <= max_chars:
            current = f"{current} {word}"
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


def text_window(clip_duration: float, timing: Optional[TextTiming]) -> tuple[float, float]:
    """Visible window [start, end] of a segment's text, clamped to the clip."""
    if timing is None:
        return 0.0, clip_duration
    start = min(max(0.0, timing.start), clip_duration)
    duration = timing.duration if timing.duration is not None else clip_duration
    return start, min(start + duration, clip_duration)


class TextRenderer:
    """Builds drawtext stages for segment text overlays."""

    def __init__(self, font_resolver: Optional["FontResolver"] = None):
        self.font_resolver = font_resolver

    def resolve_font(self, segment_type: str) -> Optional[str]:
        if self.font_resolver is None:
            return None
        return self.font_resolver.resolve(get_font_use_case(segment_type))

    def add_text_overlay(
        self,
        chain: FilterChain,
        segment: Segment,
        clip_duration: float,
        output: str,
    ) -> FilterChain:
        """Append a drawtext stage for the segment's text, if it has any.

        Args:
            chain: Chain to extend
            segment: Segment carrying text_overlay/text_timing
            clip_duration: Length of the clip the text is drawn on
            output: Output pad name for the drawtext stage

        Returns:
            The extended chain, or the same chain when there is no text
        """
        if not segment.text_overlay or not segment.text_overlay.strip():
            return chain

        style = get_text_style(segment.type)
        wrapped = wrap_text(segment.text_overlay.strip(), style.max_chars_per_line)
        start, end = text_window(clip_duration, segment.text_timing)

        font_path = self.resolve_font(segment.type)
        if font_path is None:
            logger.warning(
                f"[CLIP] No font resolved for segment {segment.index} ({segment.type}); "
                "using FFmpeg default font"
            )

        params: dict[str, Union[str, int]] = {}
        if font_path:
            params["fontfile"] = escape_option_value(font_path)
        params.update(
            text=escape_drawtext_text(wrapped),
            fontsize=style.font_size,
            fontcolor=style.font_color,
            x="(w-text_w)/2",
            y=style.y,
            line_spacing=style.line_spacing,
            box=1,
            boxcolor=style.box_color,
            boxborderw=style.box_border,
            fix_bounds=1,
            enable=enable_between(start, end),
        )
        return chain.then("drawtext", output, **params)

    def add_bold_text(
        self,
        chain: FilterChain,
        segment: Segment,
        clip_duration: float,
        output: str,
        width: int,
        height: int,
        fps: int,
    ) -> FilterChain:
        """Append the segment's text as an animated bold headline."""
        if not segment.text_overlay or not segment.text_overlay.strip():
            return chain

        style = get_text_style(segment.type)
        wrapped = wrap_text(segment.text_overlay.strip(), style.max_chars_per_line)
        start, end = text_window(clip_duration, segment.text_timing)
        fade = min(0.3, (end - start) / 2)

        font_size = style.font_size
        if isinstance(style.y, int):
            y = style.y
        else:
            # Bottom-anchored styles keep the same margin as the boxed caption
            y = height - int(font_size * 1.3 * (wrapped.count("\n") + 1)) - 150

        return build_bold_text(
            chain,
            wrapped,
            y,
            OverlayTextStyle(font_size=font_size, font_path=self.resolve_font(segment.type)),
            AnimationTiming(start=start, duration=end - start, fade_in=fade, fade_out=fade),
            output,
            video_width=width,
            fps=fps,
        )
