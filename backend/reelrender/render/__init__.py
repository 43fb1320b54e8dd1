from reelrender.render.duration import DurationReconciler
from reelrender.render.filter_graph import FilterGraph, FilterNode
from reelrender.render.models import RenderInput, RenderOptions, Segment
from reelrender.render.pipeline import (
    RenderPipeline,
    RenderResult,
    RenderStage,
    RenderStatus,
)
from reelrender.render.process_runner import ProcessRunner

__all__ = [
    "RenderPipeline",
    "RenderResult",
    "RenderStage",
    "RenderStatus",
    "RenderInput",
    "RenderOptions",
    "Segment",
    "FilterGraph",
    "FilterNode",
    "DurationReconciler",
    "ProcessRunner",
]
