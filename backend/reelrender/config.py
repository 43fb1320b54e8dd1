from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REELRENDER_",
        extra="ignore",
    )

    # Application
    app_name: str = "ffmpeg-video-renderer"
    app_version: str = "0.1.0"
    debug: bool = False

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Render defaults (used when a job omits or sends invalid options)
    render_output_width: int = 1080
    render_output_height: int = 1920
    render_fps: int = 30
    render_transition_type: str = "crossfade"
    render_transition_duration_s: float = 0.5
    render_segment_default_duration_s: float = 3.0

    # Encoding (kept minimal so several jobs can share one host)
    render_video_preset: str = "ultrafast"
    render_crf: int = 23
    render_audio_bitrate: str = "192k"
    render_ffmpeg_threads: int = 1

    # Ken Burns
    ken_burns_start_zoom: float = 1.0
    ken_burns_end_zoom: float = 1.12
    ken_burns_scale_factor: float = 1.2
    canvas_policy: Literal["pad", "crop"] = "pad"
    canvas_pad_color: str = "black"

    # Limits
    max_transition_clips: int = 10
    image_download_batch_size: int = 3
    max_concurrent_renders: int = 1

    # Timeouts (seconds)
    clip_timeout_s: float = 120.0
    concat_timeout_s: float = 60.0
    transition_timeout_s: float = 180.0
    duration_fix_timeout_s: float = 30.0
    mux_timeout_s: float = 120.0
    probe_timeout_s: float = 30.0
    fetch_timeout_s: float = 60.0

    # Duration tolerances (seconds)
    duration_match_tolerance_s: float = 0.1
    duration_validation_tolerance_s: float = 0.5

    # Working directories
    work_root: str = "/tmp"

    # Fonts
    font_dir: str = "/tmp/fonts"
    font_download_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
