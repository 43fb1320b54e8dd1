"""Animated overlay filters.

Generates filter stages for:
- Bold headline text with slide-up entrance and a faded bottom
- Pulsing highlight indicators (dot, circle, corner marks)

Indicators are drawn on small transparent canvases whose alpha is driven
per frame by geq, then overlaid onto the video inside the animation window.
drawbox colors are static, so per-frame opacity has to come from geq.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from reelrender.render.expressions import (
    enable_between,
    fade_alpha,
    fmt,
    pulse,
    pulse_period,
    slide_position,
)
from reelrender.render.filter_graph import (
    FilterChain,
    FilterNode,
    escape_drawtext_text,
    escape_option_value,
)
from reelrender.render.models import HighlightConfig

logger = logging.getLogger(__name__)

SLIDE_DISTANCE_PX = 40
FADE_STEPS = 4
FADE_BASE_OPACITY = 0.98
FADE_OPACITY_DROP = 0.7

PULSE_DOT_SIZE = 12
PULSE_DOT_TOP_OFFSET = 20
CORNER_LINE_WIDTH = 3


class HighlightKind(str, Enum):
    PULSE_DOT = "pulse-dot"
    PULSE_CIRCLE = "pulse-circle"
    CORNER_MARKS = "corner-marks"
    BRACKET = "bracket"


@dataclass
class OverlayTextStyle:
    """Styling for bold animated text."""

    font_size: int = 64
    font_path: Optional[str] = None
    color: str = "white"
    shadow_color: str = "black@0.6"
    shadow_offset_y: int = 4
    faded_bottom: bool = True
    fade_height: float = 0.35  # fraction of the text height


@dataclass
class AnimationTiming:
    start: float
    duration: float
    fade_in: float = 0.3
    fade_out: float = 0.3

    @property
    def end(self) -> float:
        return self.start + self.duration


def hex_to_ffmpeg_color(color: str) -> str:
    """Convert ``#RRGGBB`` to FFmpeg's ``0xRRGGBB``.

    Raises:
        ValueError: If the color is not a 6-digit hex color
    """
    value = color.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected #RRGGBB color, got {color!r}")
    int(value, 16)
    return f"0x{value.upper()}"


def fade_step_opacity(step: int) -> float:
    """Opacity of fade band `step` (0 = top band of the faded region)."""
    return FADE_BASE_OPACITY * (1 - (step / FADE_STEPS) * FADE_OPACITY_DROP)


def _even(value: float) -> int:
    number = int(math.ceil(value))
    return number if number % 2 == 0 else number + 1


def _transparent_canvas(name: str, width: int, height: int, fps: int, duration: float) -> FilterNode:
    return FilterNode.build(
        "color",
        outputs=(name,),
        c="black@0.0",
        s=f"{width}x{height}",
        r=fps,
        d=float(duration),
    )


def _circle_alpha(radius: str, opacity: str) -> str:
    return f"if(lte(hypot(X-W/2,Y-H/2),{radius}),255*{opacity},0)"


def _drawtext_params(text: str, style: OverlayTextStyle) -> dict[str, Union[str, int]]:
    params: dict[str, Union[str, int]] = {}
    if style.font_path:
        params["fontfile"] = escape_option_value(style.font_path)
    params.update(
        text=escape_drawtext_text(text),
        fontsize=style.font_size,
        fontcolor=style.color,
    )
    if style.shadow_offset_y > 0:
        params.update(
            shadowcolor=style.shadow_color,
            shadowx=0,
            shadowy=style.shadow_offset_y,
        )
    params.update(borderw=2, bordercolor="black@0.5")
    return params


def _fade_bands_expr(band_height: int, fade_height: float) -> str:
    """Stepped opacity over the bottom of the text band, 1 above it."""
    fade_px = band_height * fade_height
    fade_top = band_height - fade_px
    step_px = fade_px / FADE_STEPS

    expr = fmt(fade_step_opacity(FADE_STEPS - 1))
    for step in range(FADE_STEPS - 2, -1, -1):
        expr = f"if(lt(Y,{fmt(fade_top + step_px * (step + 1))}),{fmt(fade_step_opacity(step))},{expr})"
    return f"if(lt(Y,{fmt(fade_top)}),1,{expr})"


def build_bold_text(
    chain: FilterChain,
    text: str,
    y: float,
    style: OverlayTextStyle,
    timing: AnimationTiming,
    output: str,
    x: Union[str, int] = "(w-text_w)/2",
    video_width: int = 1080,
    fps: int = 30,
) -> FilterChain:
    """Append bold text that fades in while sliding up 40 px.

    With faded_bottom the text is drawn on a transparent band whose lower
    part is stepped down in opacity, then overlaid at the sliding position.

    Args:
        chain: Chain to extend
        text: Text (may contain newlines)
        y: Final top position of the text in pixels
        style: Text styling
        timing: Visibility window with fade in/out lengths
        output: Output pad name
        x: Horizontal position expression
        video_width: Frame width (band width)
        fps: Frame rate of the band source

    Returns:
        Chain ending at `output`
    """
    anim_end = timing.start + timing.fade_in
    alpha = fade_alpha(timing.start, anim_end, timing.end - timing.fade_out, timing.end)
    params = _drawtext_params(text, style)

    if not style.faded_bottom or style.fade_height <= 0:
        return chain.then(
            "drawtext", output,
            **params,
            x=x,
            y=slide_position(y, SLIDE_DISTANCE_PX, timing.start, anim_end),
            alpha=alpha,
        )

    lines = text.count("\n") + 1
    band_height = _even(style.font_size * 1.3 * lines + style.shadow_offset_y + 4)
    canvas = _transparent_canvas(f"{output}_canvas", video_width, band_height, fps, timing.end)

    band_alpha = fade_alpha(
        timing.start, anim_end, timing.end - timing.fade_out, timing.end, var="T"
    )
    layer = (
        FilterChain.start(f"{output}_canvas")
        .then("format", f"{output}_rgba", pix_fmts="rgba")
        .then("drawtext", f"{output}_text", **params, x=x, y=0)
        .then(
            "geq", f"{output}_band",
            r="r(X,Y)",
            g="g(X,Y)",
            b="b(X,Y)",
            a=f"alpha(X,Y)*{_fade_bands_expr(band_height, style.fade_height)}*{band_alpha}",
        )
    )
    chain = chain.branch((canvas, *layer.stages), chain.last_pad)
    return chain.then(
        "overlay", output,
        extra_inputs=(layer.last_pad,),
        x=0,
        y=slide_position(y, SLIDE_DISTANCE_PX, timing.start, anim_end),
        enable=enable_between(timing.start, timing.end),
    )


def _pulse_window(highlight: HighlightConfig, timing: AnimationTiming) -> float:
    total = highlight.pulses_duration or timing.duration
    return pulse_period(total, highlight.pulse_count)


def build_pulse_circle(
    chain: FilterChain,
    highlight: HighlightConfig,
    timing: AnimationTiming,
    output: str,
    video_width: int = 1080,
    video_height: int = 1920,
    fps: int = 30,
) -> FilterChain:
    """Circle at the region center pulsing in radius (0.8-1.2x) and opacity (0.3-0.9)."""
    region_w = highlight.width * video_width
    region_h = highlight.height * video_height
    center_x = round(highlight.x * video_width + region_w / 2)
    center_y = round(highlight.y * video_height + region_h / 2)
    base_radius = max(1.0, round(min(region_w, region_h) * 0.15))
    size = _even(base_radius * 1.2 * 2)

    period = _pulse_window(highlight, timing)
    radius = pulse(period, timing.start, timing.end, base_radius * 0.8, base_radius * 1.2, var="T")
    opacity = pulse(period, timing.start, timing.end, 0.3, 0.9, var="T")

    return _overlay_indicator(
        chain, highlight, timing, output,
        width=size, height=size,
        x=center_x - size // 2, y=center_y - size // 2,
        alpha=_circle_alpha(radius, opacity),
        fps=fps,
    )


def build_pulse_dot(
    chain: FilterChain,
    highlight: HighlightConfig,
    timing: AnimationTiming,
    output: str,
    video_width: int = 1080,
    video_height: int = 1920,
    fps: int = 30,
) -> FilterChain:
    """Small dot at the top center of the region pulsing in opacity (0.4-0.9)."""
    dot_x = round(highlight.x * video_width + highlight.width * video_width / 2)
    dot_y = round(highlight.y * video_height + PULSE_DOT_TOP_OFFSET)

    period = _pulse_window(highlight, timing)
    opacity = pulse(period, timing.start, timing.end, 0.4, 0.9, var="T")

    return _overlay_indicator(
        chain, highlight, timing, output,
        width=PULSE_DOT_SIZE, height=PULSE_DOT_SIZE,
        x=dot_x - PULSE_DOT_SIZE // 2, y=dot_y - PULSE_DOT_SIZE // 2,
        alpha=_circle_alpha(fmt(PULSE_DOT_SIZE / 2), opacity),
        fps=fps,
    )


def build_corner_marks(
    chain: FilterChain,
    highlight: HighlightConfig,
    timing: AnimationTiming,
    output: str,
    video_width: int = 1080,
    video_height: int = 1920,
    fps: int = 30,
) -> FilterChain:
    """L-shaped marks on the four region corners pulsing in opacity (0.5-0.9)."""
    left = round(highlight.x * video_width)
    top = round(highlight.y * video_height)
    box_w = max(2, round((highlight.x + highlight.width) * video_width) - left)
    box_h = max(2, round((highlight.y + highlight.height) * video_height) - top)
    length = max(CORNER_LINE_WIDTH, round(min(box_w, box_h) * 0.15))
    line = CORNER_LINE_WIDTH

    # (x, y, w, h) in canvas coordinates
    marks = [
        (0, 0, length, line), (0, 0, line, length),
        (box_w - length, 0, length, line), (box_w - line, 0, line, length),
        (0, box_h - line, length, line), (0, box_h - length, line, length),
        (box_w - length, box_h - line, length, line), (box_w - line, box_h - length, line, length),
    ]

    color = hex_to_ffmpeg_color(highlight.color)
    period = _pulse_window(highlight, timing)
    opacity = pulse(period, timing.start, timing.end, 0.5, 0.9, var="T")

    canvas = _transparent_canvas(f"{output}_canvas", box_w, box_h, fps, timing.end)
    layer = FilterChain.start(f"{output}_canvas").then("format", f"{output}_rgba", pix_fmts="rgba")
    for i, (mx, my, mw, mh) in enumerate(marks):
        layer = layer.then(
            "drawbox", f"{output}_mark{i}",
            x=mx, y=my, w=mw, h=mh, color=f"{color}@1.0", t="fill", replace=1,
        )
    layer = layer.then(
        "geq", f"{output}_pulse",
        r="r(X,Y)", g="g(X,Y)", b="b(X,Y)", a=f"alpha(X,Y)*{opacity}",
    )

    chain = chain.branch((canvas, *layer.stages), chain.last_pad)
    return chain.then(
        "overlay", output,
        extra_inputs=(layer.last_pad,),
        x=left,
        y=top,
        enable=enable_between(timing.start, timing.end),
    )


def _overlay_indicator(
    chain: FilterChain,
    highlight: HighlightConfig,
    timing: AnimationTiming,
    output: str,
    *,
    width: int,
    height: int,
    x: int,
    y: int,
    alpha: str,
    fps: int,
) -> FilterChain:
    source = FilterNode.build(
        "color",
        outputs=(f"{output}_src",),
        c=hex_to_ffmpeg_color(highlight.color),
        s=f"{width}x{height}",
        r=fps,
        d=float(timing.end),
    )
    layer = (
        FilterChain.start(f"{output}_src")
        .then("format", f"{output}_rgba", pix_fmts="rgba")
        .then("geq", f"{output}_shape", r="r(X,Y)", g="g(X,Y)", b="b(X,Y)", a=alpha)
    )
    chain = chain.branch((source, *layer.stages), chain.last_pad)
    return chain.then(
        "overlay", output,
        extra_inputs=(layer.last_pad,),
        x=x,
        y=y,
        enable=enable_between(timing.start, timing.end),
    )


def get_highlight_filter(
    kind: str,
    chain: FilterChain,
    highlight: HighlightConfig,
    timing: AnimationTiming,
    output: str,
    video_width: int = 1080,
    video_height: int = 1920,
    fps: int = 30,
) -> FilterChain:
    """Dispatch on highlight kind; unknown kinds get a pulse circle."""
    try:
        resolved = HighlightKind(kind)
    except ValueError:
        logger.warning(f"[CLIP] Unknown highlight kind {kind!r}, using pulse-circle")
        resolved = HighlightKind.PULSE_CIRCLE

    if resolved is HighlightKind.PULSE_DOT:
        builder = build_pulse_dot
    elif resolved in (HighlightKind.CORNER_MARKS, HighlightKind.BRACKET):
        builder = build_corner_marks
    else:
        builder = build_pulse_circle
    return builder(chain, highlight, timing, output, video_width, video_height, fps)
