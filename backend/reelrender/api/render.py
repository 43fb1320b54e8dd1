"""Render API endpoint - streams job progress as NDJSON."""

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from reelrender.config import get_settings
from reelrender.constants.error_codes import get_error_spec
from reelrender.exceptions import InputValidationError, ReelRenderError
from reelrender.render.models import RenderInput
from reelrender.render.pipeline import RenderPipeline, RenderResult
from reelrender.schemas.envelope import ErrorInfo
from reelrender.schemas.render import (
    RenderCompletedEvent,
    RenderFailedEvent,
    RenderProgressEvent,
    RenderRequest,
    RenderStartedEvent,
)

router = APIRouter()
logger = logging.getLogger(__name__)

PipelineFactory = Callable[[], RenderPipeline]

_render_slots: Optional[asyncio.Semaphore] = None

# Strong references to renders whose client went away; they run to completion
_detached_renders: set[asyncio.Task] = set()


def get_render_slots() -> asyncio.Semaphore:
    """Semaphore limiting concurrent renders on this process."""
    global _render_slots
    if _render_slots is None:
        _render_slots = asyncio.Semaphore(max(1, get_settings().max_concurrent_renders))
    return _render_slots


def get_pipeline_factory() -> PipelineFactory:
    return RenderPipeline


def _log_detached_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(f"[RENDER] Detached render failed: {error}")


def _ndjson(event: BaseModel) -> bytes:
    return (event.model_dump_json(exclude_none=True) + "\n").encode("utf-8")


@router.post("/render")
async def render_video(
    render_request: RenderRequest,
    pipeline_factory: PipelineFactory = Depends(get_pipeline_factory),
):
    """
    Render a video from segments and an audio track.

    The response is a stream of JSON lines: a "processing" line with the job
    id, one line per progress update, then a final "completed" line (with the
    video as a data URL) or a "failed" line with structured error info.
    """
    try:
        render_input = RenderInput.from_dict(render_request.to_job_input())
    except InputValidationError as e:
        logger.warning(f"[RENDER] Rejected render request: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=RenderFailedEvent(error=e.to_error_info()).model_dump(exclude_none=True),
        )

    pipeline = pipeline_factory()
    return StreamingResponse(
        _stream_render(pipeline, render_input),
        media_type="application/x-ndjson",
    )


async def _stream_render(pipeline: RenderPipeline, render_input: RenderInput) -> AsyncIterator[bytes]:
    queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
    job_id = pipeline.job_id

    yield _ndjson(RenderStartedEvent(job_id=job_id))

    def on_progress(percent: int, stage: str) -> None:
        queue.put_nowait(_ndjson(RenderProgressEvent(stage=stage, progress=percent)))

    pipeline.set_progress_callback(on_progress)

    async def run() -> RenderResult:
        async with get_render_slots():
            return await pipeline.render(render_input)

    task = asyncio.create_task(run())
    task.add_done_callback(lambda _: queue.put_nowait(None))

    try:
        while True:
            line = await queue.get()
            if line is None:
                break
            yield line
    finally:
        if not task.done():
            logger.warning(f"[RENDER] [{job_id}] Client disconnected, render continues")
            _detached_renders.add(task)
            task.add_done_callback(_detached_renders.discard)
            task.add_done_callback(_log_detached_outcome)

    try:
        result = task.result()
    except ReelRenderError as e:
        yield _ndjson(RenderFailedEvent(job_id=job_id, error=e.to_error_info()))
        return
    except Exception as e:
        logger.exception(f"[RENDER] [{job_id}] Unexpected render failure: {e}")
        spec = get_error_spec("INTERNAL_ERROR")
        stage = pipeline.job.error.stage if pipeline.job.error else pipeline.job.stage
        yield _ndjson(
            RenderFailedEvent(
                job_id=job_id,
                error=ErrorInfo(
                    code="INTERNAL_ERROR",
                    message=str(e) or "Internal server error",
                    stage=stage,
                    retryable=spec.get("retryable", False),
                    suggested_fix=spec.get("suggested_fix"),
                ),
            )
        )
        return

    logger.info(f"[RENDER] [{job_id}] Sending final result: {result.size} bytes")
    yield _ndjson(
        RenderCompletedEvent(
            job_id=job_id,
            video_url=result.to_data_url(),
            video_size=result.size,
            duration=result.duration_seconds,
        )
    )
