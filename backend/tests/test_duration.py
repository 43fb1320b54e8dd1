"""Tests for duration reconciliation, muxing and final validation."""

from pathlib import Path

import pytest

from conftest import FakeProbe, FakeRunner
from reelrender.exceptions import DurationProbeError, MuxError, ValidationError
from reelrender.render.duration import (
    CorrectionAction,
    DurationReconciler,
    build_correction_command,
    build_mux_command,
    plan_duration_correction,
    validate_artifact,
)
from reelrender.utils.media_info import ProbeResult, StreamInfo


class TestPlanCorrection:
    """Tests for choosing extend / trim / nothing."""

    def test_extend(self):
        correction = plan_duration_correction(12.4, 10.0)
        assert correction.action is CorrectionAction.EXTEND
        assert correction.diff == pytest.approx(2.4)

    def test_trim(self):
        correction = plan_duration_correction(9.0, 10.0)
        assert correction.action is CorrectionAction.TRIM
        assert correction.diff == pytest.approx(-1.0)

    def test_within_tolerance(self):
        assert plan_duration_correction(10.05, 10.0).action is CorrectionAction.NONE
        assert plan_duration_correction(9.95, 10.0).action is CorrectionAction.NONE

    def test_tolerance_boundary(self):
        assert plan_duration_correction(10.1, 10.0, tolerance=0.1).action is CorrectionAction.NONE
        assert plan_duration_correction(10.2, 10.0, tolerance=0.1).action is CorrectionAction.EXTEND


class TestCorrectionCommand:
    """Tests for the FFmpeg commands applying a correction."""

    def test_extend_clones_last_frame(self):
        args = build_correction_command(
            plan_duration_correction(12.4, 10.0), Path("in.mp4"), Path("out.mp4")
        )
        assert args[args.index("-vf") + 1] == "tpad=stop_mode=clone:stop_duration=2.400"
        assert args[args.index("-c:v") + 1] == "libx264"
        assert args[-1] == "out.mp4"

    def test_trim_stream_copies(self):
        args = build_correction_command(
            plan_duration_correction(9.0, 10.0), Path("in.mp4"), Path("out.mp4")
        )
        assert args == ["-y", "-i", "in.mp4", "-t", "9.000", "-c:v", "copy", "out.mp4"]

    def test_nothing_to_do(self):
        correction = plan_duration_correction(10.0, 10.0)
        assert build_correction_command(correction, Path("in.mp4"), Path("out.mp4")) is None


class TestMuxCommand:
    def test_exact_duration_without_shortest(self):
        args = build_mux_command(Path("v.mp4"), Path("a.mp3"), Path("out.mp4"), 12.4, "192k")

        assert "-shortest" not in args
        assert args[args.index("-t") + 1] == "12.400"
        assert args[args.index("-c:v") + 1] == "copy"
        assert args[args.index("-c:a") + 1] == "aac"
        assert args[args.index("-b:a") + 1] == "192k"
        assert "0:v:0" in args and "1:a:0" in args


class TestValidateArtifact:
    """Tests for final artifact checks."""

    def _probe(self, duration, audio=True):
        streams = [StreamInfo(codec_type="video")]
        if audio:
            streams.append(StreamInfo(codec_type="audio"))
        return ProbeResult(duration_s=duration, streams=streams)

    def test_passes(self):
        assert validate_artifact(self._probe(12.3), 12.4) == 12.3

    def test_missing_audio(self):
        with pytest.raises(ValidationError, match="no audio track"):
            validate_artifact(self._probe(12.4, audio=False), 12.4)

    def test_missing_duration(self):
        with pytest.raises(ValidationError, match="no duration"):
            validate_artifact(self._probe(None), 12.4)

    def test_duration_mismatch(self):
        with pytest.raises(ValidationError, match="duration mismatch"):
            validate_artifact(self._probe(11.0), 12.4)


class TestDurationReconciler:
    """Tests for the reconciler against fake ffmpeg/ffprobe."""

    @pytest.fixture
    def media(self, tmp_path: Path) -> tuple[Path, Path]:
        video = tmp_path / "video-concat.mp4"
        audio = tmp_path / "audio.mp3"
        video.write_bytes(b"video")
        audio.write_bytes(b"audio")
        return video, audio

    @pytest.mark.asyncio
    async def test_probe_audio_duration(self, media):
        reconciler = DurationReconciler(FakeRunner(), FakeProbe(audio_duration=12.4))
        assert await reconciler.probe_audio_duration(media[1]) == 12.4

    @pytest.mark.asyncio
    async def test_probe_failure_is_fatal(self, media):
        reconciler = DurationReconciler(FakeRunner(), FakeProbe(audio_fails=True))
        with pytest.raises(DurationProbeError, match="cannot proceed safely"):
            await reconciler.probe_audio_duration(media[1])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", [None, 0.0, -1.0, float("inf")])
    async def test_invalid_probed_duration(self, media, duration):
        reconciler = DurationReconciler(FakeRunner(), FakeProbe(audio_duration=duration))
        with pytest.raises(DurationProbeError):
            await reconciler.probe_audio_duration(media[1])

    @pytest.mark.asyncio
    async def test_reconcile_extends(self, media, tmp_path):
        runner = FakeRunner()
        reconciler = DurationReconciler(runner, FakeProbe())

        result = await reconciler.reconcile(media[0], 10.0, 12.4, tmp_path)

        assert result == tmp_path / "video-matched.mp4"
        assert runner.labels == ["duration extend"]

    @pytest.mark.asyncio
    async def test_reconcile_noop(self, media, tmp_path):
        runner = FakeRunner()
        reconciler = DurationReconciler(runner, FakeProbe())

        assert await reconciler.reconcile(media[0], 10.0, 10.05, tmp_path) == media[0]
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_reconcile_failure(self, media, tmp_path):
        reconciler = DurationReconciler(FakeRunner(fail_labels=["duration"]), FakeProbe())
        with pytest.raises(MuxError, match="Failed to match video duration"):
            await reconciler.reconcile(media[0], 10.0, 9.0, tmp_path)

    @pytest.mark.asyncio
    async def test_mux(self, media, tmp_path):
        runner = FakeRunner()
        reconciler = DurationReconciler(runner, FakeProbe())

        result = await reconciler.mux(media[0], media[1], 12.4, tmp_path)

        assert result == tmp_path / "video-with-audio.mp4"
        assert result.read_bytes() == b"fake-media"
        assert runner.args_for("audio mux")[-1] == str(result)

    @pytest.mark.asyncio
    async def test_mux_rejects_empty_input(self, media, tmp_path):
        media[0].write_bytes(b"")
        reconciler = DurationReconciler(FakeRunner(), FakeProbe())
        with pytest.raises(MuxError, match="Video file is empty"):
            await reconciler.mux(media[0], media[1], 12.4, tmp_path)

    @pytest.mark.asyncio
    async def test_mux_rejects_empty_output(self, media, tmp_path):
        reconciler = DurationReconciler(FakeRunner(output_bytes=b""), FakeProbe())
        with pytest.raises(MuxError, match="empty after audio merge"):
            await reconciler.mux(media[0], media[1], 12.4, tmp_path)

    @pytest.mark.asyncio
    async def test_validate(self, media):
        reconciler = DurationReconciler(FakeRunner(), FakeProbe(audio_duration=12.4, final_duration=12.2))
        assert await reconciler.validate(media[0], 12.4) == 12.2

    @pytest.mark.asyncio
    async def test_validate_without_audio(self, media):
        reconciler = DurationReconciler(FakeRunner(), FakeProbe(final_has_audio=False))
        with pytest.raises(ValidationError):
            await reconciler.validate(media[0], 10.0)
