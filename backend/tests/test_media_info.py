"""
Tests for media info extraction.

ffprobe is replaced by a patched subprocess.run returning canned JSON; the
real binary is only used by the tests marked requires_ffmpeg.
"""

import json
import subprocess
from pathlib import Path

import pytest

from conftest import requires_ffmpeg
from reelrender.exceptions import MediaProbeError
from reelrender.utils import media_info
from reelrender.utils.media_info import probe_media

PROBE_OUTPUT = {
    "streams": [
        {"codec_type": "video", "codec_name": "h264", "width": 1080, "height": 1920},
        {"codec_type": "audio", "codec_name": "aac"},
    ],
    "format": {"duration": "12.400000"},
}


def _patch_ffprobe(monkeypatch, stdout="", returncode=0, stderr="", exc=None):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        if exc is not None:
            raise exc
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    monkeypatch.setattr(media_info.subprocess, "run", fake_run)
    return calls


class TestProbeMedia:
    """Test probing with canned ffprobe output."""

    def test_parses_streams_and_duration(self, monkeypatch):
        calls = _patch_ffprobe(monkeypatch, stdout=json.dumps(PROBE_OUTPUT))

        result = probe_media(Path("/w/video.mp4"))

        assert result.duration_s == pytest.approx(12.4)
        assert result.has_audio
        assert [s.codec_type for s in result.streams] == ["video", "audio"]
        assert result.streams[0].width == 1080

        cmd, kwargs = calls[0]
        assert cmd[0] == "ffprobe"
        assert "-show_streams" in cmd
        assert cmd[-1] == "/w/video.mp4"
        assert kwargs["timeout"] == 30.0

    def test_na_duration(self, monkeypatch):
        _patch_ffprobe(monkeypatch, stdout=json.dumps({"streams": [], "format": {"duration": "N/A"}}))

        result = probe_media("/w/audio.mp3")

        assert result.duration_s is None
        assert not result.has_audio

    def test_failure(self, monkeypatch):
        _patch_ffprobe(monkeypatch, returncode=1, stderr="/w/x.mp3: Invalid data found\n")
        with pytest.raises(MediaProbeError, match="Invalid data found"):
            probe_media("/w/x.mp3")

    def test_bad_json(self, monkeypatch):
        _patch_ffprobe(monkeypatch, stdout="not json")
        with pytest.raises(MediaProbeError, match="parse"):
            probe_media("/w/x.mp3")

    def test_timeout(self, monkeypatch):
        _patch_ffprobe(monkeypatch, exc=subprocess.TimeoutExpired(cmd="ffprobe", timeout=30))
        with pytest.raises(MediaProbeError, match="timed out"):
            probe_media("/w/x.mp3")

    def test_missing_binary(self, monkeypatch):
        _patch_ffprobe(monkeypatch, exc=FileNotFoundError("ffprobe"))
        with pytest.raises(MediaProbeError, match="could not be started"):
            probe_media("/w/x.mp3")


@requires_ffmpeg
class TestRealFfprobe:
    """Probe a file generated with the real ffmpeg binary."""

    def test_generated_tone(self, tmp_path):
        path = tmp_path / "tone.m4a"
        subprocess.run(
            ["ffmpeg", "-hide_banner", "-y", "-f", "lavfi", "-i", "sine=frequency=440:duration=1",
             "-c:a", "aac", str(path)],
            check=True,
            capture_output=True,
        )

        result = probe_media(path)

        assert result.has_audio
        assert [s.codec_type for s in result.streams] == ["audio"]
        assert result.duration_s == pytest.approx(1.0, abs=0.1)
