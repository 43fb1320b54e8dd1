"""Tests for clip concatenation: strategies, xfade graphs and the fallback plan."""

from pathlib import Path

import pytest

from reelrender.exceptions import ConcatenationError
from reelrender.render.models import CanvasPolicy
from reelrender.render.transitions import (
    ConcatenationPlan,
    ConcatStrategy,
    build_fast_concat_command,
    build_transition_command,
    build_transition_graph,
    choose_strategy,
    get_xfade_transition,
    transition_offsets,
    write_concat_manifest,
)


class TestXfadeNames:
    def test_known_names(self):
        assert get_xfade_transition("crossfade") == "fade"
        assert get_xfade_transition("wipe") == "wipeleft"
        assert get_xfade_transition("zoom") == "zoomin"
        assert get_xfade_transition(" SlideRight ") == "slideright"

    def test_unknown_name_fades(self):
        assert get_xfade_transition("spiral") == "fade"


class TestChooseStrategy:
    """Tests for strategy selection."""

    def test_single_clip(self):
        assert choose_strategy(1, "fade", 10) is ConcatStrategy.SINGLE

    def test_transition(self):
        assert choose_strategy(3, "fade", 10) is ConcatStrategy.TRANSITION

    def test_none_is_fast(self):
        assert choose_strategy(3, "none", 10) is ConcatStrategy.FAST
        assert choose_strategy(3, "NONE", 10) is ConcatStrategy.FAST

    def test_too_many_clips_is_fast(self):
        assert choose_strategy(10, "fade", 10) is ConcatStrategy.TRANSITION
        assert choose_strategy(11, "fade", 10) is ConcatStrategy.FAST

    def test_limit_from_settings(self, isolated_settings):
        limit = isolated_settings.max_transition_clips
        assert choose_strategy(limit + 1, "fade") is ConcatStrategy.FAST


class TestTransitionOffsets:
    """Offsets accumulate each clip's own duration."""

    def test_uneven_durations(self):
        assert transition_offsets([3.0, 4.0, 3.0], 0.5) == pytest.approx([2.5, 6.5])

    def test_two_clips(self):
        assert transition_offsets([2.0, 5.0], 1.0) == pytest.approx([1.0])

    def test_single_clip_has_no_offsets(self):
        assert transition_offsets([3.0], 0.5) == []


class TestTransitionGraph:
    """Tests for the xfade graph."""

    def test_graph_structure(self):
        graph = build_transition_graph([3.0, 4.0, 3.0], "crossfade", 0.5, 1080, 1920)

        xfades = [n for n in graph.nodes if n.name == "xfade"]
        assert [n.inputs for n in xfades] == [("v0", "v1"), ("x1", "v2")]
        assert [n.outputs for n in xfades] == [("x1",), ("vout",)]
        assert [n.param("offset") for n in xfades] == pytest.approx([2.5, 6.5])
        assert all(n.param("transition") == "fade" for n in xfades)
        assert graph.output_pad == "vout"

    def test_offsets_serialized(self):
        text = build_transition_graph([3.0, 4.0, 3.0], "fade", 0.5, 1080, 1920).to_string()
        assert "xfade=transition=fade:duration=0.500:offset=2.500[x1]" in text
        assert "xfade=transition=fade:duration=0.500:offset=6.500[vout]" in text

    def test_inputs_normalized(self):
        graph = build_transition_graph([3.0, 3.0], "fade", 0.5, 1080, 1920)
        setsar = [n for n in graph.nodes if n.name == "setsar"]
        assert [n.outputs[0] for n in setsar] == ["v0", "v1"]
        assert graph.nodes[0].inputs == ("0:v",)
        assert graph.nodes[0].param("force_original_aspect_ratio") == "decrease"

    def test_crop_normalization(self):
        graph = build_transition_graph([3.0, 3.0], "fade", 0.5, 1080, 1920, CanvasPolicy.CROP)
        assert "crop" in [n.name for n in graph.nodes]

    def test_needs_two_clips(self):
        with pytest.raises(ConcatenationError):
            build_transition_graph([3.0], "fade", 0.5, 1080, 1920)

    def test_command(self):
        graph = build_transition_graph([3.0, 3.0], "fade", 0.5, 1080, 1920)
        args = build_transition_command([Path("/w/clip-0.mp4"), Path("/w/clip-1.mp4")], graph, Path("/w/out.mp4"))
        assert args[:5] == ["-y", "-i", "/w/clip-0.mp4", "-i", "/w/clip-1.mp4"]
        assert args[args.index("-map") + 1] == "[vout]"
        assert args[-1] == "/w/out.mp4"


class TestFastConcat:
    """Tests for the concat demuxer path."""

    def test_manifest(self, tmp_path):
        manifest = write_concat_manifest(
            [tmp_path / "clip-0.mp4", tmp_path / "it's.mp4"], tmp_path / "concat.txt"
        )
        lines = manifest.read_text(encoding="utf-8").splitlines()
        assert lines[0] == f"file '{tmp_path / 'clip-0.mp4'}'"
        assert lines[1] == f"file '{tmp_path}/it'\\''s.mp4'"

    def test_command_stream_copies(self):
        args = build_fast_concat_command(Path("/w/concat.txt"), Path("/w/out.mp4"))
        assert args == [
            "-y", "-f", "concat", "-safe", "0", "-i", "/w/concat.txt",
            "-c", "copy", "-movflags", "+faststart", "/w/out.mp4",
        ]


class TestConcatenationPlan:
    """Tests for attempt ordering and fallback."""

    def test_transition_plan_has_fast_fallback(self):
        plan = ConcatenationPlan.for_clips(3, "fade", 10)
        assert plan.strategies == [ConcatStrategy.TRANSITION, ConcatStrategy.FAST]

    def test_single_plan(self):
        assert ConcatenationPlan.for_clips(1, "fade", 10).strategies == [ConcatStrategy.SINGLE]

    @pytest.mark.asyncio
    async def test_first_success_wins(self):
        plan = ConcatenationPlan.for_clips(3, "fade", 10)
        tried = []

        async def attempt(strategy):
            tried.append(strategy)

        assert await plan.run(attempt) is ConcatStrategy.TRANSITION
        assert tried == [ConcatStrategy.TRANSITION]

    @pytest.mark.asyncio
    async def test_falls_back_to_fast(self):
        plan = ConcatenationPlan.for_clips(3, "fade", 10)

        async def attempt(strategy):
            if strategy is ConcatStrategy.TRANSITION:
                raise ConcatenationError("xfade exited with code 1")

        assert await plan.run(attempt) is ConcatStrategy.FAST
        assert [(a.strategy, a.succeeded) for a in plan.attempts] == [
            (ConcatStrategy.TRANSITION, False),
            (ConcatStrategy.FAST, True),
        ]
        assert plan.attempts[0].error == "xfade exited with code 1"

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self):
        plan = ConcatenationPlan.for_clips(3, "fade", 10)

        async def attempt(strategy):
            raise ConcatenationError(f"{strategy.value} broke")

        with pytest.raises(ConcatenationError, match="Failed to concatenate clips: fast broke"):
            await plan.run(attempt)
        assert len(plan.attempts) == 2
