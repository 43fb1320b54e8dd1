"""
Pytest fixtures for reelrender tests.

External tools are replaced with fakes:
- FakeRunner records FFmpeg argument vectors and writes a stub output file
- FakeProbe answers ffprobe queries from configured durations
- HTTP downloads go through httpx.MockTransport

Tests that need the real ffmpeg binary are marked with @pytest.mark.requires_ffmpeg
and skipped when it is not installed.
"""

import shutil
from pathlib import Path
from typing import Optional, Sequence, Union

import httpx
import pytest

from reelrender.config import get_settings
from reelrender.exceptions import MediaProbeError, ProcessError
from reelrender.render.process_runner import ProcessResult
from reelrender.utils.media_info import ProbeResult, StreamInfo

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch):
    """Point every settings lookup at per-test directories."""
    monkeypatch.setenv("REELRENDER_WORK_ROOT", str(tmp_path / "work"))
    monkeypatch.setenv("REELRENDER_FONT_DIR", str(tmp_path / "fonts"))
    monkeypatch.setenv("REELRENDER_FONT_DOWNLOAD_ENABLED", "false")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


class FakeRunner:
    """Stands in for ProcessRunner.

    Every call is recorded as (label, args). The last argument is treated as
    the output file and filled with stub bytes. Labels containing one of
    `fail_labels` raise ProcessError instead.
    """

    def __init__(self, fail_labels: Sequence[str] = (), output_bytes: bytes = b"fake-media"):
        self.fail_labels = set(fail_labels)
        self.output_bytes = output_bytes
        self.calls: list[tuple[str, list[str]]] = []

    @property
    def labels(self) -> list[str]:
        return [label for label, _ in self.calls]

    def args_for(self, label: str) -> list[str]:
        for call_label, args in self.calls:
            if call_label == label:
                return args
        raise AssertionError(f"No call labelled {label!r}; calls: {self.labels}")

    async def run_ffmpeg(
        self,
        args: Sequence[str],
        *,
        timeout_s: float,
        label: str = "ffmpeg",
        cwd: Optional[Union[str, Path]] = None,
    ) -> ProcessResult:
        argv = [str(a) for a in args]
        self.calls.append((label, argv))
        if any(fragment in label for fragment in self.fail_labels):
            raise ProcessError(
                f"{label} exited with code 1: Error: simulated failure",
                return_code=1,
                stderr_tail=["Error: simulated failure"],
            )
        Path(argv[-1]).write_bytes(self.output_bytes)
        return ProcessResult(args=argv, return_code=0)


class FakeProbe:
    """Stands in for probe_media.

    audio.mp3 reports `audio_duration`; every other file reports
    `final_duration` (defaults to the audio duration) with a video stream
    and, unless `final_has_audio` is False, an audio stream.
    """

    def __init__(
        self,
        audio_duration: Optional[float] = 10.0,
        final_duration: Optional[float] = None,
        final_has_audio: bool = True,
        audio_fails: bool = False,
    ):
        self.audio_duration = audio_duration
        self.final_duration = final_duration
        self.final_has_audio = final_has_audio
        self.audio_fails = audio_fails
        self.calls: list[str] = []

    def __call__(self, path: Path) -> ProbeResult:
        path = Path(path)
        self.calls.append(path.name)
        if path.name == "audio.mp3":
            if self.audio_fails:
                raise MediaProbeError("ffprobe failed: Invalid data found when processing input")
            return ProbeResult(
                duration_s=self.audio_duration,
                streams=[StreamInfo(codec_type="audio", codec_name="mp3")],
            )

        streams = [StreamInfo(codec_type="video", codec_name="h264", width=1080, height=1920)]
        if self.final_has_audio:
            streams.append(StreamInfo(codec_type="audio", codec_name="aac"))
        duration = self.final_duration if self.final_duration is not None else self.audio_duration
        return ProbeResult(duration_s=duration, streams=streams)


def media_transport(missing: Sequence[str] = ()) -> httpx.MockTransport:
    """Serve small bodies for every URL; URLs containing a `missing` fragment 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if any(fragment in url for fragment in missing):
            return httpx.Response(404, text="not found")
        if url.endswith(".mp3"):
            return httpx.Response(200, content=b"ID3-audio-bytes", headers={"content-type": "audio/mpeg"})
        return httpx.Response(200, content=b"\xff\xd8image-bytes", headers={"content-type": "image/jpeg"})

    return httpx.MockTransport(handler)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def job_data() -> dict:
    """Three segments (3s, 4s, 3s) with a crossfade."""
    return {
        "segments": [
            {"image_url": "https://cdn.example.com/a.jpg", "duration": 3, "type": "opener",
             "text_overlay": "Meet the new kettle"},
            {"image_url": "https://cdn.example.com/b.jpg", "duration": 4, "type": "feature",
             "text_overlay": "Boils in 90 seconds", "text_style": "bold"},
            {"image_url": "https://cdn.example.com/c.jpg", "duration": 3, "type": "cta",
             "text_overlay": "Shop now", "highlight": {"kind": "pulse-dot"}},
        ],
        "audio_url": "https://cdn.example.com/voice.mp3",
        "options": {"transition_type": "fade", "transition_duration": 0.5},
    }
