"""Media file information utilities using FFprobe."""

import json
import logging
import math
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from reelrender.config import get_settings
from reelrender.exceptions import MediaProbeError

logger = logging.getLogger(__name__)


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass
class StreamInfo:
    """One stream reported by ffprobe."""

    codec_type: Optional[str] = None
    codec_name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class ProbeResult:
    """Container-level duration and stream list."""

    duration_s: Optional[float] = None
    streams: list[StreamInfo] = field(default_factory=list)

    @property
    def has_audio(self) -> bool:
        return any(s.codec_type == "audio" for s in self.streams)


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, timeout=settings.probe_timeout_s
        )
    except subprocess.TimeoutExpired as e:
        raise MediaProbeError(f"ffprobe timed out after {settings.probe_timeout_s}s") from e
    except OSError as e:
        raise MediaProbeError(f"ffprobe could not be started: {e}") from e

    if result.returncode != 0:
        raise MediaProbeError(f"ffprobe failed: {result.stderr.strip()}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output: {e}") from e


def _parse_duration(raw: object) -> Optional[float]:
    try:
        duration = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return duration if math.isfinite(duration) else None


def probe_media(file_path: Union[str, Path]) -> ProbeResult:
    """
    Probe a media file's duration and streams.

    Args:
        file_path: Path to media file

    Returns:
        ProbeResult; duration_s is None when ffprobe reports none (or N/A)

    Raises:
        MediaProbeError: If ffprobe fails or its output is not JSON
    """
    data = _run_ffprobe(str(file_path), "-show_format", "-show_streams")

    streams = [
        StreamInfo(
            codec_type=stream.get("codec_type"),
            codec_name=stream.get("codec_name"),
            width=stream.get("width"),
            height=stream.get("height"),
        )
        for stream in data.get("streams", [])
    ]
    duration = _parse_duration(data.get("format", {}).get("duration"))
    logger.debug(
        f"[PROBE] {Path(file_path).name}: duration={duration}, "
        f"streams={[s.codec_type for s in streams]}"
    )
    return ProbeResult(duration_s=duration, streams=streams)
