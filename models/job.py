"""Conversion job model and output format rules."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Optional

from utils.exceptions import InvalidFormatError

MEDIA_TYPE_AUDIO = 'audio'
MEDIA_TYPE_VIDEO = 'video'
MEDIA_TYPES = (MEDIA_TYPE_AUDIO, MEDIA_TYPE_VIDEO)

VALID_AUDIO_FORMATS = ('mp3', 'aac', 'm4a', 'opus', 'wav', 'flac')
VALID_VIDEO_FORMATS = ('mp4', 'mkv', 'webm')

# Quality labels offered by the metadata listing map onto the mp4 pipeline
FORMAT_ALIASES = {
    '360p': 'mp4',
    '480p': 'mp4',
    '720p': 'mp4',
    '1080p': 'mp4',
}

# Video output is always H.264/AAC with a faststart moov atom
VIDEO_OUTPUT_EXTENSION = 'mp4'

_NON_ALNUM = re.compile(r'[^a-z0-9]+')


def resolve_output_format(requested_format: str, media_type: str) -> str:
    """Resolve aliases and validate a requested format for a media type.

    Args:
        requested_format: Format token sent by the client (e.g. ``mp3``, ``720p``)
        media_type: ``audio`` or ``video``

    Returns:
        The extension of the artifact the job will produce

    Raises:
        InvalidFormatError: If the format is not allowed for the media type
    """
    token = (requested_format or '').strip().lower()
    token = FORMAT_ALIASES.get(token, token)

    if media_type == MEDIA_TYPE_AUDIO:
        allowed = VALID_AUDIO_FORMATS
    elif media_type == MEDIA_TYPE_VIDEO:
        allowed = VALID_VIDEO_FORMATS
    else:
        raise InvalidFormatError(f"Unsupported media type: {media_type!r}")

    if token not in allowed:
        raise InvalidFormatError("Unsupported output format")

    return token if media_type == MEDIA_TYPE_AUDIO else VIDEO_OUTPUT_EXTENSION


def sanitize_display_name(title: str) -> str:
    """Case-fold a title and collapse every non-alphanumeric run to ``_``."""
    name = _NON_ALNUM.sub('_', (title or '').lower()).strip('_')
    return name or 'converted'


@dataclass
class Job:
    """One conversion request tracked by the job registry."""

    id: str
    content_id: str
    media_type: str
    extension: str
    output_path: str
    input_path: str
    display_name: str
    progress: int = 0
    done: bool = False
    exit_code: Optional[int] = None
    created_at: float = field(default_factory=time.time)

    @property
    def filename(self) -> str:
        """Download filename announced in ``Content-Disposition``."""
        return f"{self.display_name}.{self.extension}"

    def __repr__(self):
        return f'<Job {self.id} type={self.media_type} ext={self.extension} progress={self.progress} done={self.done}>'
