"""Per-clip motion graphs.

A still image becomes a clip by fitting it onto an oversized canvas (so the
zoom never exposes an edge), running zoompan from start_zoom towards
end_zoom over the clip's frames, and drawing the segment's text on top.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from reelrender.config import get_settings
from reelrender.render.filter_graph import FilterChain, FilterGraph
from reelrender.render.models import CanvasPolicy, RenderOptions, Segment
from reelrender.render.overlays import AnimationTiming, get_highlight_filter
from reelrender.render.text_renderer import TextRenderer

logger = logging.getLogger(__name__)

# Zoom increments are tiny per frame; 3 decimals would stall the zoom
ZOOM_INCREMENT_DECIMALS = 6

CLIP_INPUT_PAD = "0:v"
CLIP_OUTPUT_PAD = "vout"


@dataclass(frozen=True)
class KenBurnsConfig:
    start_zoom: float = 1.0
    end_zoom: float = 1.12
    scale_factor: float = 1.2
    pad_color: str = "black"

    @classmethod
    def from_settings(cls) -> "KenBurnsConfig":
        settings = get_settings()
        return cls(
            start_zoom=settings.ken_burns_start_zoom,
            end_zoom=settings.ken_burns_end_zoom,
            scale_factor=settings.ken_burns_scale_factor,
            pad_color=settings.canvas_pad_color,
        )


def zoom_increment(config: KenBurnsConfig, duration: float, fps: int) -> float:
    """Per-frame zoom step so the zoom reaches end_zoom on the last frame."""
    frames = duration * fps
    if frames <= 0:
        return 0.0
    return (config.end_zoom - config.start_zoom) / frames


def _even(value: float) -> int:
    # yuv420p needs even dimensions
    number = int(round(value))
    return number if number % 2 == 0 else number + 1


def fit_to_canvas(
    chain: FilterChain,
    width: int,
    height: int,
    policy: CanvasPolicy,
    prefix: str,
    pad_color: str = "black",
) -> FilterChain:
    """Fit the chain's video onto a width x height canvas.

    PAD keeps the whole image (scale down, then letterbox); CROP fills the
    frame (scale up, then center crop).
    """
    if policy is CanvasPolicy.CROP:
        chain = chain.then(
            "scale", f"{prefix}scaled",
            w=width, h=height, flags="lanczos", force_original_aspect_ratio="increase",
        )
        return chain.then("crop", f"{prefix}fit", w=width, h=height)

    chain = chain.then(
        "scale", f"{prefix}scaled",
        w=width, h=height, flags="lanczos", force_original_aspect_ratio="decrease",
    )
    return chain.then(
        "pad", f"{prefix}fit",
        w=width, h=height, x="(ow-iw)/2", y="(oh-ih)/2", color=pad_color,
    )


def build_ken_burns_chain(
    chain: FilterChain,
    width: int,
    height: int,
    fps: int,
    duration: float,
    policy: CanvasPolicy = CanvasPolicy.PAD,
    config: Optional[KenBurnsConfig] = None,
) -> FilterChain:
    """Append canvas fit, zoompan and setsar=1 to the chain.

    Args:
        chain: Chain whose last pad carries the still image
        width: Output width
        height: Output height
        fps: Output frame rate
        duration: Clip duration in seconds
        policy: Canvas policy for the oversized working canvas
        config: Zoom settings (defaults from settings)

    Returns:
        Chain ending in a width x height motion stream
    """
    config = config or KenBurnsConfig.from_settings()
    canvas_w = _even(width * config.scale_factor)
    canvas_h = _even(height * config.scale_factor)

    chain = fit_to_canvas(chain, canvas_w, canvas_h, policy, "kb", config.pad_color)

    increment = zoom_increment(config, duration, fps)
    chain = chain.then(
        "zoompan", "kbzoom",
        z=f"min(zoom+{increment:.{ZOOM_INCREMENT_DECIMALS}f},{config.end_zoom:.3f})",
        x="iw/2-(iw/zoom/2)",
        y="ih/2-(ih/zoom/2)",
        d=max(1, int(round(duration * fps))),
        s=f"{width}x{height}",
        fps=fps,
    )
    return chain.then("setsar", "kbsar", 1)


def compile_clip_graph(
    segment: Segment,
    options: RenderOptions,
    text_renderer: TextRenderer,
    config: Optional[KenBurnsConfig] = None,
) -> FilterGraph:
    """Build the full per-clip graph: motion, then optional text and highlight.

    The graph reads the looped image from input 0 and ends at [vout].
    """
    chain = build_ken_burns_chain(
        FilterChain.start(CLIP_INPUT_PAD),
        options.width,
        options.height,
        options.fps,
        segment.duration,
        options.canvas_policy,
        config,
    )

    if segment.text_style == "bold":
        chain = text_renderer.add_bold_text(
            chain, segment, segment.duration, "kbtext",
            options.width, options.height, options.fps,
        )
    else:
        chain = text_renderer.add_text_overlay(chain, segment, segment.duration, "kbtext")

    if segment.highlight is not None:
        chain = get_highlight_filter(
            segment.highlight.kind,
            chain,
            segment.highlight,
            AnimationTiming(start=0.0, duration=segment.duration, fade_in=0.0, fade_out=0.0),
            "kbhl",
            options.width,
            options.height,
            options.fps,
        )

    # Final stage always writes [vout] so the -map target never changes
    chain = chain.then("format", CLIP_OUTPUT_PAD, pix_fmts="yuv420p")
    graph = chain.to_graph()
    logger.debug(f"[CLIP] Segment {segment.index} graph has {len(graph)} stages")
    return graph


def build_clip_command(
    image_path: Path,
    output_path: Path,
    duration: float,
    graph: FilterGraph,
    fps: int,
) -> list[str]:
    """FFmpeg arguments (without the binary) to synthesize one clip."""
    settings = get_settings()
    return [
        "-y",
        "-loop", "1",
        "-i", str(image_path),
        "-t", f"{duration:.3f}",
        "-filter_complex", graph.to_string(),
        "-map", f"[{graph.output_pad}]",
        "-c:v", "libx264",
        "-preset", settings.render_video_preset,
        "-crf", str(settings.render_crf),
        "-pix_fmt", "yuv420p",
        "-r", str(fps),
        "-threads", str(settings.render_ffmpeg_threads),
        "-tune", "fastdecode",
        "-movflags", "+faststart",
        str(output_path),
    ]
