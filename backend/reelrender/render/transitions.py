"""Clip concatenation: transition graph, fast path and the attempt plan.

Strategy:
- SINGLE: one clip, copied to the output as-is
- TRANSITION: every clip normalized, then chained xfade stages
- FAST: concat demuxer manifest with stream copy, no re-encode

A TRANSITION plan falls back to FAST when the transition encode fails.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from reelrender.config import get_settings
from reelrender.exceptions import ConcatenationError, ReelRenderError
from reelrender.render.filter_graph import FilterChain, FilterGraph
from reelrender.render.ken_burns import fit_to_canvas
from reelrender.render.models import CanvasPolicy

logger = logging.getLogger(__name__)

DEFAULT_XFADE_TRANSITION = "fade"

# Job transition type -> xfade transition name
XFADE_TRANSITIONS: dict[str, str] = {
    "fade": "fade",
    "crossfade": "fade",
    "dissolve": "fade",
    "wipe": "wipeleft",
    "wipeleft": "wipeleft",
    "wiperight": "wiperight",
    "wipeup": "wipeup",
    "wipedown": "wipedown",
    "zoom": "zoomin",
    "zoomin": "zoomin",
    "zoomout": "zoomout",
    "slide": "slideleft",
    "slideleft": "slideleft",
    "slideright": "slideright",
}


class ConcatStrategy(Enum):
    SINGLE = "single"
    FAST = "fast"
    TRANSITION = "transition"


def get_xfade_transition(transition_type: str) -> str:
    """Map a job transition type onto an xfade name; unknown types fade."""
    return XFADE_TRANSITIONS.get(transition_type.strip().lower(), DEFAULT_XFADE_TRANSITION)


def choose_strategy(
    clip_count: int,
    transition_type: str,
    max_transition_clips: Optional[int] = None,
) -> ConcatStrategy:
    if max_transition_clips is None:
        max_transition_clips = get_settings().max_transition_clips
    if clip_count <= 1:
        return ConcatStrategy.SINGLE
    if transition_type.strip().lower() == "none" or clip_count > max_transition_clips:
        return ConcatStrategy.FAST
    return ConcatStrategy.TRANSITION


def transition_offsets(durations: Sequence[float], transition_duration: float) -> list[float]:
    """xfade offsets: offset_i = d_0 + ... + d_(i-1) - transition_duration.

    One offset per transition (len(durations) - 1 values), accumulated left to
    right with each clip's own duration.
    """
    offsets: list[float] = []
    cumulative = 0.0
    for duration in durations[:-1]:
        cumulative += duration
        offsets.append(cumulative - transition_duration)
    return offsets


def build_transition_graph(
    durations: Sequence[float],
    transition_type: str,
    transition_duration: float,
    width: int,
    height: int,
    policy: CanvasPolicy = CanvasPolicy.PAD,
    pad_color: str = "black",
) -> FilterGraph:
    """Normalize every input to width x height, then chain xfade stages.

    Normalized inputs are [v0]..[vN-1]; intermediate xfade outputs are
    [x1]..; the last stage writes [vout].

    Raises:
        ConcatenationError: If fewer than two clips are given
    """
    if len(durations) < 2:
        raise ConcatenationError("Transition graph needs at least two clips")

    xfade_name = get_xfade_transition(transition_type)
    graph = FilterGraph()

    for i in range(len(durations)):
        chain = fit_to_canvas(
            FilterChain.start(f"{i}:v"), width, height, policy, f"n{i}", pad_color
        )
        chain = chain.then("setsar", f"v{i}", 1)
        graph.extend(chain.stages)

    offsets = transition_offsets(durations, transition_duration)
    current = "v0"
    for i, offset in enumerate(offsets, start=1):
        output = "vout" if i == len(offsets) else f"x{i}"
        chain = FilterChain.start(current).then(
            "xfade", output,
            extra_inputs=(f"v{i}",),
            transition=xfade_name,
            duration=float(transition_duration),
            offset=float(offset),
        )
        graph.extend(chain.stages)
        current = output

    return graph


def build_transition_command(
    clip_paths: Sequence[Path],
    graph: FilterGraph,
    output_path: Path,
) -> list[str]:
    settings = get_settings()
    args = ["-y"]
    for path in clip_paths:
        args.extend(["-i", str(path)])
    args.extend([
        "-filter_complex", graph.to_string(),
        "-map", f"[{graph.output_pad}]",
        "-c:v", "libx264",
        "-preset", settings.render_video_preset,
        "-crf", str(settings.render_crf),
        "-pix_fmt", "yuv420p",
        "-threads", str(settings.render_ffmpeg_threads),
        "-movflags", "+faststart",
        str(output_path),
    ])
    return args


def write_concat_manifest(clip_paths: Sequence[Path], manifest_path: Path) -> Path:
    """Write a concat demuxer list; single quotes in paths are escaped."""
    lines = []
    for path in clip_paths:
        escaped = str(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    manifest_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return manifest_path


def build_fast_concat_command(manifest_path: Path, output_path: Path) -> list[str]:
    return [
        "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", str(manifest_path),
        "-c", "copy",
        "-movflags", "+faststart",
        str(output_path),
    ]


@dataclass
class ConcatAttempt:
    strategy: ConcatStrategy
    succeeded: bool
    error: Optional[str] = None


@dataclass
class ConcatenationPlan:
    """Ordered concatenation attempts; the first success wins."""

    strategies: list[ConcatStrategy]
    attempts: list[ConcatAttempt] = field(default_factory=list)

    @classmethod
    def for_clips(
        cls,
        clip_count: int,
        transition_type: str,
        max_transition_clips: Optional[int] = None,
    ) -> "ConcatenationPlan":
        strategy = choose_strategy(clip_count, transition_type, max_transition_clips)
        if strategy is ConcatStrategy.TRANSITION:
            return cls(strategies=[ConcatStrategy.TRANSITION, ConcatStrategy.FAST])
        return cls(strategies=[strategy])

    async def run(
        self, attempt: Callable[[ConcatStrategy], Awaitable[None]]
    ) -> ConcatStrategy:
        """Run attempts in order until one succeeds.

        Args:
            attempt: Coroutine function performing one strategy

        Returns:
            The strategy that succeeded

        Raises:
            ConcatenationError: If every attempt failed
        """
        last_error: Optional[ReelRenderError] = None
        for strategy in self.strategies:
            try:
                await attempt(strategy)
            except ReelRenderError as e:
                self.attempts.append(ConcatAttempt(strategy, False, e.message))
                last_error = e
                remaining = len(self.strategies) - len(self.attempts)
                if remaining:
                    logger.warning(
                        f"[CONCAT] {strategy.value} concatenation failed ({e.message}), "
                        "falling back"
                    )
                continue
            self.attempts.append(ConcatAttempt(strategy, True))
            logger.info(f"[CONCAT] {strategy.value} concatenation succeeded")
            return strategy

        message = last_error.message if last_error else "no strategy attempted"
        raise ConcatenationError(f"Failed to concatenate clips: {message}") from last_error
