"""Application configuration utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional
import os
import tempfile

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class FFmpegSettings:
    path: str = "ffmpeg"
    loglevel: str = "error"
    audio_bitrate: str = "192k"
    video_encoder: str = "libx264"
    video_preset: str = "fast"
    video_crf: int = 23
    audio_encoder: str = "aac"


@dataclass(frozen=True)
class DownloaderSettings:
    content_base_url: str = "https://www.youtube.com/watch?v="
    merge_format: str = "mkv"
    socket_timeout: int = 30


@dataclass(frozen=True)
class AppConfig:
    work_dir: str
    job_ttl_seconds: int = 600
    stream_chunk_size: int = 64 * 1024
    ffmpeg: FFmpegSettings = field(default_factory=FFmpegSettings)
    downloader: DownloaderSettings = field(default_factory=DownloaderSettings)
    api_key: Optional[str] = None
    allowed_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))
    socketio_async_mode: str = "threading"
    rate_limit: Optional[str] = "60 per minute"


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}") from exc


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    ttl = _int_env("JOB_TTL_SECONDS", 600)
    if ttl <= 0:
        raise ValueError("JOB_TTL_SECONDS must be positive")

    return AppConfig(
        work_dir=os.path.abspath(
            os.getenv("WORK_DIR", os.path.join(tempfile.gettempdir(), "media-convert-api"))
        ),
        job_ttl_seconds=ttl,
        stream_chunk_size=_int_env("STREAM_CHUNK_SIZE", 64 * 1024),
        ffmpeg=FFmpegSettings(
            path=os.getenv("FFMPEG_PATH", "ffmpeg"),
            loglevel=os.getenv("FFMPEG_LOGLEVEL", "error"),
            audio_bitrate=os.getenv("AUDIO_BITRATE", "192k"),
            video_preset=os.getenv("VIDEO_PRESET", "fast"),
            video_crf=_int_env("VIDEO_CRF", 23),
        ),
        downloader=DownloaderSettings(
            content_base_url=os.getenv(
                "CONTENT_BASE_URL", "https://www.youtube.com/watch?v="
            ),
        ),
        api_key=os.getenv("API_KEY") or None,
        allowed_origins=tuple(
            origin.strip()
            for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
        ),
        socketio_async_mode=os.getenv("SOCKETIO_ASYNC_MODE", "threading"),
        # An empty RATE_LIMIT turns the limiter off
        rate_limit=os.getenv("RATE_LIMIT", "60 per minute").strip() or None,
    )
