"""Filter graph model and serialization.

Filter graphs are assembled as typed FilterNode stages and serialized once.
Escaping lives here and nowhere else:

- escape_graph_value(): graph-level escaping, applied to every parameter
  value when a node is serialized (``\\ ' [ ] , ;``).
- escape_option_value(): option-level escaping (``fontfile``), applied by
  the caller *before* the value becomes a parameter.
- escape_drawtext_text(): drawtext ``text``; expansion-level escaping
  (``\\ %``) followed by option-level escaping.

FFmpeg unescapes the graph level first, then the option level, then
drawtext expands the text.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from reelrender.exceptions import FilterGraphError
from reelrender.render.expressions import fmt

ParamValue = Union[str, int, float]

GRAPH_SPECIAL_CHARS = "\\'[],;"
OPTION_SPECIAL_CHARS = ":'\"[]{},"
EXPANSION_SPECIAL_CHARS = "\\%"


def escape_graph_value(value: str) -> str:
    """Backslash-escape the characters the filtergraph parser treats as syntax."""
    return "".join(f"\\{ch}" if ch in GRAPH_SPECIAL_CHARS else ch for ch in value)


def escape_option_value(value: str) -> str:
    """Escape a filter option value such as a font path.

    Backslash is escaped first so later escapes are not doubled. Newlines
    stay raw; neither unescape level gives ``\\n`` a meaning.
    """
    escaped = value.replace("\\", "\\\\")
    for ch in OPTION_SPECIAL_CHARS:
        escaped = escaped.replace(ch, f"\\{ch}")
    return escaped


def escape_drawtext_text(text: str) -> str:
    """Escape drawtext ``text``, which drawtext expands after option parsing.

    The expansion level treats ``\\`` as an escape and ``%`` as the start of
    a sequence, so both are escaped before the option level.
    """
    expanded = "".join(f"\\{ch}" if ch in EXPANSION_SPECIAL_CHARS else ch for ch in text)
    return escape_option_value(expanded)


def format_param(value: ParamValue) -> str:
    """Render a parameter value; floats use the shared 3-decimal format."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return fmt(value)
    return str(value)


@dataclass(frozen=True)
class FilterNode:
    """One filter stage: ``[in]...name=k=v:k=v[out]``.

    A param key of None renders the value positionally (``setsar=1``).
    """

    name: str
    params: tuple[tuple[Optional[str], ParamValue], ...] = ()
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        name: str,
        *positional: ParamValue,
        inputs: tuple[str, ...] = (),
        outputs: tuple[str, ...] = (),
        **params: ParamValue,
    ) -> "FilterNode":
        """Create a node; keyword order is kept as parameter order."""
        ordered: list[tuple[Optional[str], ParamValue]] = [(None, v) for v in positional]
        ordered.extend(params.items())
        return cls(name=name, params=tuple(ordered), inputs=tuple(inputs), outputs=tuple(outputs))

    def param(self, key: str) -> Optional[ParamValue]:
        """Look up a named parameter's raw (unescaped) value."""
        for k, v in self.params:
            if k == key:
                return v
        return None

    def to_string(self) -> str:
        ins = "".join(f"[{pad}]" for pad in self.inputs)
        outs = "".join(f"[{pad}]" for pad in self.outputs)
        if not self.params:
            return f"{ins}{self.name}{outs}"

        args = ":".join(
            escape_graph_value(format_param(v)) if k is None
            else f"{k}={escape_graph_value(format_param(v))}"
            for k, v in self.params
        )
        return f"{ins}{self.name}={args}{outs}"


@dataclass
class FilterGraph:
    """Ordered filter stages with unique output pad names."""

    nodes: list[FilterNode] = field(default_factory=list)

    def add(self, node: FilterNode) -> "FilterGraph":
        existing = self.output_pads
        for pad in node.outputs:
            if pad in existing:
                raise FilterGraphError(f"Duplicate output pad [{pad}] in filter graph")
        self.nodes.append(node)
        return self

    def extend(self, nodes: "list[FilterNode] | tuple[FilterNode, ...]") -> "FilterGraph":
        for node in nodes:
            self.add(node)
        return self

    @property
    def output_pads(self) -> set[str]:
        return {pad for node in self.nodes for pad in node.outputs}

    @property
    def output_pad(self) -> str:
        """Output pad of the last stage, mapped to the output file."""
        if not self.nodes or not self.nodes[-1].outputs:
            raise FilterGraphError("Filter graph has no labeled output")
        return self.nodes[-1].outputs[-1]

    def to_string(self) -> str:
        return ";".join(node.to_string() for node in self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True)
class FilterChain:
    """Immutable accumulator threaded through graph build steps.

    Every step returns a new chain whose last_pad is the step's output, so
    builders never track a "current pad" by hand.
    """

    stages: tuple[FilterNode, ...]
    last_pad: str

    @classmethod
    def start(cls, pad: str) -> "FilterChain":
        return cls(stages=(), last_pad=pad)

    def then(
        self,
        name: str,
        output: str,
        *positional: ParamValue,
        extra_inputs: tuple[str, ...] = (),
        **params: ParamValue,
    ) -> "FilterChain":
        """Append a filter consuming last_pad (plus extra_inputs) and producing output."""
        node = FilterNode.build(
            name,
            *positional,
            inputs=(self.last_pad, *extra_inputs),
            outputs=(output,),
            **params,
        )
        return FilterChain(stages=(*self.stages, node), last_pad=output)

    def branch(self, nodes: "tuple[FilterNode, ...]", last_pad: str) -> "FilterChain":
        """Append prebuilt nodes and move last_pad to the given pad."""
        return FilterChain(stages=(*self.stages, *nodes), last_pad=last_pad)

    def to_graph(self) -> FilterGraph:
        return FilterGraph().extend(self.stages)
