"""Tests for segment text overlays.

Features:
- Segment-type styles and font use cases
- Greedy word wrapping
- Visibility windows from text timing
- Boxed caption and bold headline stages
"""

from typing import Optional

from reelrender.render.filter_graph import FilterChain
from reelrender.render.models import Segment, TextTiming
from reelrender.render.text_renderer import (
    DEFAULT_TEXT_STYLE,
    TextRenderer,
    get_font_use_case,
    get_text_style,
    text_window,
    wrap_text,
)


class RecordingFontResolver:
    """Returns a fixed font path and records the use cases asked for."""

    def __init__(self, path: Optional[str] = "/fonts/Oswald-SemiBold.ttf"):
        self.path = path
        self.use_cases: list[str] = []

    def resolve(self, use_case: str) -> Optional[str]:
        self.use_cases.append(use_case)
        return self.path


class TestTextStyles:
    """Tests for per-type styling."""

    def test_known_types(self):
        assert get_text_style("opener").font_size == 42
        assert get_text_style("cta").y == "h-th-150"
        assert get_text_style("feature") is DEFAULT_TEXT_STYLE

    def test_unknown_type_uses_default(self):
        assert get_text_style("testimonial") is DEFAULT_TEXT_STYLE

    def test_line_spacing_has_minimum(self):
        assert DEFAULT_TEXT_STYLE.line_spacing == 8
        assert get_text_style("cta").line_spacing == 10

    def test_font_use_cases(self):
        assert get_font_use_case("opener") == "title"
        assert get_font_use_case("cta") == "cta"
        assert get_font_use_case("anything") == "general"


class TestWrapText:
    """Tests for greedy word wrap."""

    def test_wraps_at_limit(self):
        assert wrap_text("one two three four", 9) == "one two\nthree\nfour"

    def test_lines_within_limit(self):
        text = "The quick brown fox jumps over the lazy dog near the riverbank"
        for line in wrap_text(text, 16).split("\n"):
            assert len(line) <= 16

    def test_long_word_gets_own_line(self):
        """A word longer than the limit is never split."""
        assert wrap_text("supercalifragilistic is long", 10) == "supercalifragilistic\nis long"

    def test_explicit_newlines_preserved(self):
        assert wrap_text("Title\nsub title here", 8) == "Title\nsub\ntitle\nhere"

    def test_collapses_extra_spaces(self):
        assert wrap_text("a   b", 10) == "a b"


class TestTextWindow:
    """Tests for text visibility windows."""

    def test_no_timing_spans_clip(self):
        assert text_window(3.0, None) == (0.0, 3.0)

    def test_timing_window(self):
        assert text_window(3.0, TextTiming(start=1.0, duration=1.5)) == (1.0, 2.5)

    def test_open_ended_timing(self):
        assert text_window(3.0, TextTiming(start=1.0)) == (1.0, 3.0)

    def test_clamped_to_clip(self):
        assert text_window(3.0, TextTiming(start=2.0, duration=5.0)) == (2.0, 3.0)
        assert text_window(3.0, TextTiming(start=5.0, duration=1.0)) == (3.0, 3.0)


class TestTextRenderer:
    """Tests for drawtext stage generation."""

    def test_boxed_caption(self):
        renderer = TextRenderer()
        segment = Segment(index=0, image_url="x.jpg", text_overlay="Hello world")

        chain = renderer.add_text_overlay(FilterChain.start("in"), segment, 3.0, "out")

        assert chain.last_pad == "out"
        assert chain.to_graph().to_string() == (
            "[in]drawtext=text=Hello world:fontsize=38:fontcolor=white:x=(w-text_w)/2:"
            "y=100:line_spacing=8:box=1:boxcolor=black@0.85:boxborderw=14:fix_bounds=1:"
            "enable=between(t\\,0.000\\,3.000)[out]"
        )

    def test_font_resolved_per_segment_type(self):
        resolver = RecordingFontResolver()
        renderer = TextRenderer(resolver)
        segment = Segment(index=0, image_url="x.jpg", type="opener", text_overlay="Hi")

        chain = renderer.add_text_overlay(FilterChain.start("in"), segment, 3.0, "out")

        node = chain.stages[-1]
        assert node.param("fontfile") == "/fonts/Oswald-SemiBold.ttf"
        assert resolver.use_cases == ["title"]

    def test_text_is_escaped_and_wrapped(self):
        renderer = TextRenderer()
        segment = Segment(
            index=0, image_url="x.jpg", type="cta",
            text_overlay="Only today: 50% off every single kettle",
        )

        chain = renderer.add_text_overlay(FilterChain.start("in"), segment, 3.0, "out")

        text = chain.stages[-1].param("text")
        assert "\\:" in text
        assert "50\\\\% off" in text
        assert "\n" in text
        assert "\\n" not in text

    def test_timing_sets_enable_window(self):
        renderer = TextRenderer()
        segment = Segment(
            index=0, image_url="x.jpg", text_overlay="Hi",
            text_timing=TextTiming(start=0.5, duration=2.0),
        )

        chain = renderer.add_text_overlay(FilterChain.start("in"), segment, 4.0, "out")

        assert chain.stages[-1].param("enable") == "between(t,0.500,2.500)"

    def test_no_text_leaves_chain_unchanged(self):
        renderer = TextRenderer()
        start = FilterChain.start("in")
        for text in (None, "", "   "):
            segment = Segment(index=0, image_url="x.jpg", text_overlay=text)
            assert renderer.add_text_overlay(start, segment, 3.0, "out") is start

    def test_bold_text_stages(self):
        renderer = TextRenderer(RecordingFontResolver())
        segment = Segment(
            index=0, image_url="x.jpg", text_overlay="Boils fast", text_style="bold",
        )

        chain = renderer.add_bold_text(FilterChain.start("in"), segment, 3.0, "out", 1080, 1920, 30)

        assert [node.name for node in chain.stages] == ["color", "format", "drawtext", "geq", "overlay"]
        assert chain.last_pad == "out"
        overlay = chain.stages[-1]
        assert overlay.inputs[0] == "in"
        assert overlay.param("enable") == "between(t,0.000,3.000)"

    def test_bold_text_bottom_anchored(self):
        """Bottom-anchored styles slide up to height - text height - 150."""
        renderer = TextRenderer()
        segment = Segment(
            index=0, image_url="x.jpg", type="cta", text_overlay="Shop now", text_style="bold",
        )

        chain = renderer.add_bold_text(FilterChain.start("in"), segment, 3.0, "out", 1080, 1920, 30)

        y = chain.stages[-1].param("y")
        assert y.startswith("if(lt(t,0.000),1743.000,")
        assert y.endswith(",1703.000))")
