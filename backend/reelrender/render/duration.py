"""Video/audio duration reconciliation, muxing and final validation.

The probed audio duration is authoritative: the concatenated video is
extended (last frame cloned) or trimmed to it, audio is muxed with an exact
``-t`` instead of ``-shortest``, and the result is re-probed before it is
accepted.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from reelrender.config import Settings, get_settings
from reelrender.exceptions import (
    DurationProbeError,
    MediaProbeError,
    MuxError,
    ProcessError,
    ValidationError,
)
from reelrender.render.filter_graph import FilterNode
from reelrender.render.process_runner import ProcessRunner
from reelrender.utils.media_info import ProbeResult, probe_media

logger = logging.getLogger(__name__)

ProbeFn = Callable[[Path], ProbeResult]


class CorrectionAction(Enum):
    NONE = "none"
    EXTEND = "extend"
    TRIM = "trim"


@dataclass(frozen=True)
class DurationCorrection:
    """How the video must change to match the audio."""

    action: CorrectionAction
    audio_duration: float
    video_duration: float

    @property
    def diff(self) -> float:
        return self.audio_duration - self.video_duration


def plan_duration_correction(
    audio_duration: float,
    video_duration: float,
    tolerance: float = 0.1,
) -> DurationCorrection:
    """Decide between no change, extending and trimming.

    Args:
        audio_duration: Probed audio length (seconds)
        video_duration: Sum of segment durations (seconds)
        tolerance: Differences up to this many seconds are left alone

    Returns:
        DurationCorrection with the chosen action
    """
    diff = audio_duration - video_duration
    if abs(diff) <= tolerance:
        action = CorrectionAction.NONE
    elif diff > 0:
        action = CorrectionAction.EXTEND
    else:
        action = CorrectionAction.TRIM
    return DurationCorrection(action, audio_duration, video_duration)


def build_correction_command(
    correction: DurationCorrection,
    input_path: Path,
    output_path: Path,
    settings: Optional[Settings] = None,
) -> Optional[list[str]]:
    """FFmpeg arguments applying the correction, or None when none is needed."""
    settings = settings or get_settings()

    if correction.action is CorrectionAction.EXTEND:
        tpad = FilterNode.build("tpad", stop_mode="clone", stop_duration=correction.diff)
        return [
            "-y",
            "-i", str(input_path),
            "-vf", tpad.to_string(),
            "-c:v", "libx264",
            "-preset", settings.render_video_preset,
            "-crf", str(settings.render_crf),
            "-pix_fmt", "yuv420p",
            "-threads", str(settings.render_ffmpeg_threads),
            str(output_path),
        ]

    if correction.action is CorrectionAction.TRIM:
        return [
            "-y",
            "-i", str(input_path),
            "-t", f"{correction.audio_duration:.3f}",
            "-c:v", "copy",
            str(output_path),
        ]

    return None


def build_mux_command(
    video_path: Path,
    audio_path: Path,
    output_path: Path,
    audio_duration: float,
    audio_bitrate: str = "192k",
) -> list[str]:
    """Mux with the audio's exact duration; video is stream-copied."""
    return [
        "-y",
        "-i", str(video_path),
        "-i", str(audio_path),
        "-c:v", "copy",
        "-c:a", "aac",
        "-b:a", audio_bitrate,
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-t", f"{audio_duration:.3f}",
        "-movflags", "+faststart",
        str(output_path),
    ]


def validate_artifact(
    probe: ProbeResult,
    expected_duration: float,
    tolerance: float = 0.5,
) -> float:
    """Check the muxed output has audio and the expected duration.

    Returns:
        The artifact's probed duration

    Raises:
        ValidationError: On a missing audio stream or duration mismatch
    """
    if not probe.has_audio:
        raise ValidationError("Video validation failed: final video has no audio track")

    final_duration = probe.duration_s
    if final_duration is None:
        raise ValidationError("Video validation failed: final video has no duration")

    diff = abs(final_duration - expected_duration)
    if diff > tolerance:
        raise ValidationError(
            f"Video validation failed: duration mismatch - expected "
            f"{expected_duration:.2f}s, got {final_duration:.2f}s (diff: {diff:.2f}s)"
        )
    return final_duration


class DurationReconciler:
    """Probe, correct, mux and validate against the audio duration."""

    def __init__(
        self,
        runner: ProcessRunner,
        probe: Optional[ProbeFn] = None,
        settings: Optional[Settings] = None,
    ):
        self.runner = runner
        self.probe = probe or probe_media
        self.settings = settings or get_settings()

    async def probe_audio_duration(self, audio_path: Path) -> float:
        """Authoritative audio duration; any failure is fatal.

        Raises:
            DurationProbeError: If the probe fails or returns a non-positive value
        """
        try:
            result = await asyncio.to_thread(self.probe, audio_path)
        except MediaProbeError as e:
            raise DurationProbeError(
                f"Failed to get audio duration - cannot proceed safely: {e.message}"
            ) from e

        duration = result.duration_s
        if duration is None or not math.isfinite(duration) or duration <= 0:
            raise DurationProbeError(
                f"Failed to get audio duration - cannot proceed safely: "
                f"invalid duration {duration!r}"
            )
        return duration

    async def reconcile(
        self,
        video_path: Path,
        video_duration: float,
        audio_duration: float,
        work_dir: Path,
    ) -> Path:
        """Return a video whose length matches the audio within tolerance."""
        correction = plan_duration_correction(
            audio_duration, video_duration, self.settings.duration_match_tolerance_s
        )
        if correction.action is CorrectionAction.NONE:
            logger.info(
                f"[DURATION] Video {video_duration:.2f}s matches audio {audio_duration:.2f}s"
            )
            return video_path

        logger.info(
            f"[DURATION] Mismatch: audio={audio_duration:.2f}s, video={video_duration:.2f}s, "
            f"diff={correction.diff:.2f}s -> {correction.action.value}"
        )
        output_path = work_dir / "video-matched.mp4"
        args = build_correction_command(correction, video_path, output_path, self.settings)
        try:
            await self.runner.run_ffmpeg(
                args,
                timeout_s=self.settings.duration_fix_timeout_s,
                label=f"duration {correction.action.value}",
                cwd=work_dir,
            )
        except ProcessError as e:
            raise MuxError(f"Failed to match video duration: {e.message}") from e
        return output_path

    async def mux(
        self,
        video_path: Path,
        audio_path: Path,
        audio_duration: float,
        work_dir: Path,
    ) -> Path:
        """Combine video and audio into video-with-audio.mp4.

        Raises:
            MuxError: If an input is missing/empty or FFmpeg fails
        """
        for label, path in (("Video", video_path), ("Audio", audio_path)):
            try:
                size = path.stat().st_size
            except OSError as e:
                raise MuxError(f"File verification failed: {label} file missing ({e})") from e
            if size == 0:
                raise MuxError(f"File verification failed: {label} file is empty")

        output_path = work_dir / "video-with-audio.mp4"
        args = build_mux_command(
            video_path, audio_path, output_path, audio_duration,
            self.settings.render_audio_bitrate,
        )
        try:
            await self.runner.run_ffmpeg(
                args, timeout_s=self.settings.mux_timeout_s, label="audio mux", cwd=work_dir
            )
        except ProcessError as e:
            raise MuxError(f"Failed to add audio: {e.message}") from e

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise MuxError("Failed to add audio: output video file is empty after audio merge")
        return output_path

    async def validate(self, artifact_path: Path, audio_duration: float) -> float:
        """Re-probe the muxed artifact; see validate_artifact()."""
        try:
            result = await asyncio.to_thread(self.probe, artifact_path)
        except MediaProbeError as e:
            raise ValidationError(f"Video validation failed: {e.message}") from e

        final_duration = validate_artifact(
            result, audio_duration, self.settings.duration_validation_tolerance_s
        )
        logger.info(
            f"[DURATION] Validation passed: duration={final_duration:.2f}s "
            f"(expected {audio_duration:.2f}s)"
        )
        return final_duration
