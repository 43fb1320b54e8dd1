"""
Main render pipeline for segment videos.

This module orchestrates the entire rendering process:
1. Download segment images (in small concurrent batches)
2. Download the audio track and estimate its duration
3. Synthesize one Ken Burns clip per segment
4. Concatenate clips (transitions, or stream copy as fallback)
5. Match the video duration to the probed audio duration
6. Mux audio and validate the result
7. Read the artifact and clean up the working directory

Progress is reported through a callback as (percent, stage); percentages
never go backwards. The working directory is removed on success and on
failure.
"""

import asyncio
import base64
import logging
import math
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

from reelrender.config import Settings, get_settings
from reelrender.exceptions import (
    ConcatenationError,
    InputValidationError,
    MediaProbeError,
    ProcessError,
    ReelRenderError,
    SynthesisError,
    ValidationError,
)
from reelrender.render.duration import DurationReconciler, ProbeFn
from reelrender.render.ken_burns import build_clip_command, compile_clip_graph
from reelrender.render.models import Clip, RenderInput, RenderOptions, Segment
from reelrender.render.process_runner import ProcessRunner
from reelrender.render.text_renderer import TextRenderer
from reelrender.render.transitions import (
    ConcatenationPlan,
    ConcatStrategy,
    build_fast_concat_command,
    build_transition_command,
    build_transition_graph,
    write_concat_manifest,
)
from reelrender.services.font_resolver import FontResolver
from reelrender.services.media_fetcher import MediaFetcher
from reelrender.utils.media_info import probe_media

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], Any]


# ============================================================================
# Enums
# ============================================================================


class RenderStatus(Enum):
    """Render job status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RenderStage(str, Enum):
    """Stage labels reported with progress updates."""

    INITIALIZING = "initializing"
    DOWNLOADING_IMAGES = "downloading_images"
    IMAGES_DOWNLOADED = "images_downloaded"
    DOWNLOADING_AUDIO = "downloading_audio"
    AUDIO_DOWNLOADED = "audio_downloaded"
    CREATING_CLIPS = "creating_clips"
    CLIPS_CREATED = "clips_created"
    CONCATENATING = "concatenating"
    CONCATENATED = "concatenated"
    MATCHING_DURATION = "matching_duration"
    ADDING_AUDIO = "adding_audio"
    AUDIO_ADDED = "audio_added"
    VALIDATING = "validating"
    READING_VIDEO = "reading_video"
    CLEANING_UP = "cleaning_up"
    COMPLETE = "complete"


# ============================================================================
# Dataclasses
# ============================================================================


@dataclass
class RenderJob:
    """Render job information."""

    id: str
    status: RenderStatus = RenderStatus.PENDING
    work_dir: Optional[Path] = None
    stage: Optional[str] = None
    percent: int = 0
    estimated_audio_duration: Optional[float] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[ReelRenderError] = None


@dataclass
class RenderResult:
    """Final artifact of a completed job."""

    job_id: str
    artifact: bytes
    duration_seconds: float
    concat_strategy: Optional[ConcatStrategy] = None

    @property
    def size(self) -> int:
        return len(self.artifact)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.artifact).decode("ascii")
        return f"data:video/mp4;base64,{encoded}"


# ============================================================================
# Pipeline
# ============================================================================


class RenderPipeline:
    """
    Render pipeline for one job.

    Handles:
    - Batched image downloads and audio download
    - Per-segment clip synthesis (Ken Burns, text, highlights)
    - Transition or stream-copy concatenation
    - Audio-authoritative duration matching, muxing and validation
    """

    def __init__(
        self,
        job_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        runner: Optional[ProcessRunner] = None,
        fetcher: Optional[MediaFetcher] = None,
        font_resolver: Optional[FontResolver] = None,
        probe: Optional[ProbeFn] = None,
    ):
        self.settings = settings or get_settings()
        self.job = RenderJob(id=job_id or str(uuid4()))
        self.runner = runner or ProcessRunner(self.settings.ffmpeg_path)
        self._fetcher = fetcher
        self.probe = probe or probe_media
        self.text_renderer = TextRenderer(font_resolver or FontResolver())
        self.reconciler = DurationReconciler(self.runner, self.probe, self.settings)

        self.work_dir = Path(self.settings.work_root) / f"reelrender-{self.job.id}"
        self._progress_callback: Optional[ProgressCallback] = None
        self._started = 0.0

    @property
    def job_id(self) -> str:
        return self.job.id

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        """Set callback for progress updates."""
        self._progress_callback = callback

    def _update_progress(self, percent: int, stage: RenderStage) -> None:
        """Report progress; regressions are clamped to the last value."""
        percent = max(self.job.percent, min(100, int(percent)))
        self.job.percent = percent
        self.job.stage = stage.value
        if self._progress_callback:
            self._progress_callback(percent, stage.value)

    def _log(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, f"[RENDER] [{self.job.id}] {message}")

    async def render(self, render_input: RenderInput) -> RenderResult:
        """
        Execute the full render pipeline.

        Args:
            render_input: Validated segments, audio URL and options

        Returns:
            RenderResult with the artifact bytes and its duration

        Raises:
            ReelRenderError: Subclass for the failing stage; the job is
                marked failed and the working directory removed first
        """
        if not render_input.segments:
            raise InputValidationError("Missing or empty segments array")
        if not render_input.audio_url:
            raise InputValidationError("Missing audio_url")

        self.job.status = RenderStatus.PROCESSING
        self.job.started_at = datetime.now(timezone.utc)
        self._started = time.monotonic()
        self._log(
            f"Starting render: {len(render_input.segments)} segments, "
            f"{render_input.options.width}x{render_input.options.height}@{render_input.options.fps}fps, "
            f"transition={render_input.options.transition_type}"
        )

        try:
            result = await self._run_stages(render_input)
        except ReelRenderError as e:
            if e.stage is None:
                e.stage = self.job.stage
            self._fail(e)
            raise
        except Exception as e:
            self._fail(ReelRenderError(str(e) or type(e).__name__, stage=self.job.stage))
            raise
        finally:
            try:
                self._update_progress(95, RenderStage.CLEANING_UP)
            except Exception as e:
                self._log(f"Progress callback failed during cleanup: {e}", logging.ERROR)
            finally:
                await self._cleanup()

        self.job.status = RenderStatus.COMPLETED
        self.job.completed_at = datetime.now(timezone.utc)
        self._update_progress(100, RenderStage.COMPLETE)
        self._log(
            f"Video render complete: {result.size} bytes, {result.duration_seconds:.2f}s "
            f"in {time.monotonic() - self._started:.1f}s"
        )
        return result

    def _fail(self, error: ReelRenderError) -> None:
        self.job.status = RenderStatus.FAILED
        self.job.error = error
        self.job.completed_at = datetime.now(timezone.utc)
        self._log(f"Render failed at {error.stage}: {error.message}", logging.ERROR)

    async def _run_stages(self, render_input: RenderInput) -> RenderResult:
        segments = render_input.segments
        options = render_input.options

        self._update_progress(0, RenderStage.INITIALIZING)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.job.work_dir = self.work_dir

        fetcher = self._fetcher or MediaFetcher(timeout_s=self.settings.fetch_timeout_s)
        try:
            image_paths = await self._download_images(fetcher, segments)
            audio_path = await self._download_audio(fetcher, render_input)
        finally:
            if self._fetcher is None:
                await fetcher.aclose()

        clips = await self._synthesize_clips(segments, image_paths, options)
        video_path, strategy = await self._concatenate(clips, options)

        # Audio is authoritative from here on; the probe must succeed
        self._update_progress(75, RenderStage.MATCHING_DURATION)
        video_duration = sum(clip.duration for clip in clips)
        audio_duration = await self.reconciler.probe_audio_duration(audio_path)
        self._log(f"Audio duration: {audio_duration:.2f}s, video duration: {video_duration:.2f}s")
        video_path = await self.reconciler.reconcile(
            video_path, video_duration, audio_duration, self.work_dir
        )

        self._update_progress(80, RenderStage.ADDING_AUDIO)
        final_path = await self.reconciler.mux(video_path, audio_path, audio_duration, self.work_dir)
        self._update_progress(85, RenderStage.AUDIO_ADDED)

        self._update_progress(85, RenderStage.VALIDATING)
        final_duration = await self.reconciler.validate(final_path, audio_duration)

        self._update_progress(90, RenderStage.READING_VIDEO)
        artifact = await asyncio.to_thread(final_path.read_bytes)
        if not artifact:
            raise ValidationError("Final video file is empty or could not be read")

        return RenderResult(
            job_id=self.job.id,
            artifact=artifact,
            duration_seconds=final_duration,
            concat_strategy=strategy,
        )

    # ------------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------------

    async def _download_images(
        self, fetcher: MediaFetcher, segments: list[Segment]
    ) -> list[Path]:
        self._update_progress(5, RenderStage.DOWNLOADING_IMAGES)
        batch_size = max(1, self.settings.image_download_batch_size)
        paths: list[Path] = [self.work_dir / f"image-{i}.jpg" for i in range(len(segments))]
        completed = 0

        async def download(position: int, segment: Segment) -> None:
            nonlocal completed
            media = await fetcher.download(segment.image_url, paths[position])
            completed += 1
            self._update_progress(
                5 + round(completed / len(segments) * 10), RenderStage.DOWNLOADING_IMAGES
            )
            self._log(f"Downloaded image {segment.index}: {media.size} bytes", logging.DEBUG)

        for start in range(0, len(segments), batch_size):
            # Let the whole batch settle before failing so nothing writes after cleanup
            outcomes = await asyncio.gather(
                *(
                    download(position, segments[position])
                    for position in range(start, min(start + batch_size, len(segments)))
                ),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

        self._update_progress(15, RenderStage.IMAGES_DOWNLOADED)
        self._log(f"Downloaded {len(paths)} images")
        return paths

    async def _download_audio(self, fetcher: MediaFetcher, render_input: RenderInput) -> Path:
        self._update_progress(20, RenderStage.DOWNLOADING_AUDIO)
        audio_path = self.work_dir / "audio.mp3"
        media = await fetcher.download(render_input.audio_url, audio_path)

        # Early estimate only; the authoritative probe happens after concatenation
        estimate = render_input.estimated_duration
        try:
            probed = (await asyncio.to_thread(self.probe, audio_path)).duration_s
        except MediaProbeError as e:
            self._log(f"Could not probe audio ({e.message}), estimating {estimate:.2f}s", logging.WARNING)
        else:
            if probed is not None and math.isfinite(probed) and probed > 0:
                estimate = probed
            else:
                self._log(f"Invalid audio duration {probed!r}, estimating {estimate:.2f}s", logging.WARNING)

        self.job.estimated_audio_duration = estimate
        self._log(f"Downloaded audio: {media.size} bytes, ~{estimate:.2f}s")
        self._update_progress(25, RenderStage.AUDIO_DOWNLOADED)
        return audio_path

    async def _synthesize_clips(
        self,
        segments: list[Segment],
        image_paths: list[Path],
        options: RenderOptions,
    ) -> list[Clip]:
        self._update_progress(30, RenderStage.CREATING_CLIPS)
        clips: list[Clip] = []

        for position, (segment, image_path) in enumerate(zip(segments, image_paths)):
            self._update_progress(
                30 + round(position / len(segments) * 20), RenderStage.CREATING_CLIPS
            )
            clip_path = self.work_dir / f"clip-{position}.mp4"

            # Font resolution may hit the network, keep it off the event loop
            graph = await asyncio.to_thread(
                compile_clip_graph, segment, options, self.text_renderer
            )
            args = build_clip_command(image_path, clip_path, segment.duration, graph, options.fps)
            try:
                await self.runner.run_ffmpeg(
                    args,
                    timeout_s=self.settings.clip_timeout_s,
                    label=f"clip {segment.index}",
                    cwd=self.work_dir,
                )
            except ProcessError as e:
                raise SynthesisError(
                    f"Failed to create clip {segment.index}: {e.message}",
                    segment_index=segment.index,
                ) from e

            clips.append(Clip(path=clip_path, segment_index=segment.index, duration=segment.duration))
            logger.info(
                f"[CLIP] [{self.job.id}] Created clip {position + 1}/{len(segments)}"
            )

        if len(clips) != len(segments):
            raise SynthesisError(
                f"Clip count mismatch: expected {len(segments)}, got {len(clips)}"
            )

        self._update_progress(50, RenderStage.CLIPS_CREATED)
        return clips

    async def _concatenate(
        self, clips: list[Clip], options: RenderOptions
    ) -> tuple[Path, ConcatStrategy]:
        self._update_progress(55, RenderStage.CONCATENATING)
        output_path = self.work_dir / "video-concat.mp4"
        plan = ConcatenationPlan.for_clips(
            len(clips), options.transition_type, self.settings.max_transition_clips
        )

        async def attempt(strategy: ConcatStrategy) -> None:
            if strategy is ConcatStrategy.SINGLE:
                await asyncio.to_thread(shutil.copyfile, clips[0].path, output_path)
                return

            if strategy is ConcatStrategy.TRANSITION:
                graph = build_transition_graph(
                    [clip.duration for clip in clips],
                    options.transition_type,
                    options.transition_duration,
                    options.width,
                    options.height,
                    options.canvas_policy,
                    self.settings.canvas_pad_color,
                )
                args = build_transition_command([c.path for c in clips], graph, output_path)
                timeout_s = self.settings.transition_timeout_s
            else:
                manifest = write_concat_manifest(
                    [c.path for c in clips], self.work_dir / "concat.txt"
                )
                args = build_fast_concat_command(manifest, output_path)
                timeout_s = self.settings.concat_timeout_s

            try:
                await self.runner.run_ffmpeg(
                    args, timeout_s=timeout_s, label=f"{strategy.value} concat", cwd=self.work_dir
                )
            except ProcessError as e:
                raise ConcatenationError(e.message) from e

        strategy = await plan.run(attempt)
        logger.info(
            f"[CONCAT] [{self.job.id}] Concatenated {len(clips)} clips using {strategy.value}"
        )
        self._update_progress(70, RenderStage.CONCATENATED)
        return output_path, strategy

    async def _cleanup(self) -> None:
        """Remove the working directory; errors are logged, never raised."""
        try:
            await asyncio.to_thread(shutil.rmtree, self.work_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            self._log(f"Cleanup of {self.work_dir} failed: {e}", logging.ERROR)
