"""Data models."""

from models.job import (
    Job,
    MEDIA_TYPE_AUDIO,
    MEDIA_TYPE_VIDEO,
    MEDIA_TYPES,
    VALID_AUDIO_FORMATS,
    VALID_VIDEO_FORMATS,
    resolve_output_format,
    sanitize_display_name,
)

__all__ = [
    'Job',
    'MEDIA_TYPE_AUDIO',
    'MEDIA_TYPE_VIDEO',
    'MEDIA_TYPES',
    'VALID_AUDIO_FORMATS',
    'VALID_VIDEO_FORMATS',
    'resolve_output_format',
    'sanitize_display_name',
]
