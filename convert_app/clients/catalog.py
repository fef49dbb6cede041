"""Catalog metadata client (title, thumbnail, duration, available qualities)."""

import logging
from typing import Any, Dict

import yt_dlp

from utils.config import DownloaderSettings
from utils.exceptions import CatalogError

logger = logging.getLogger(__name__)


def format_duration(seconds) -> str:
    """Render a duration as ``HH:MM:SS``, or ``MM:SS`` under an hour."""
    if not seconds:
        return "00:00"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class CatalogClient:
    """Reads content metadata through yt-dlp without downloading media."""

    def __init__(self, settings: DownloaderSettings):
        self.settings = settings

    def get_video_info(self, content_id: str) -> Dict[str, Any]:
        """Get metadata and the available stream qualities for a content id.

        Args:
            content_id: Identifier of the source content

        Returns:
            Dict with title, thumbnail, duration and video/audio format lists
        """
        url = f"{self.settings.content_base_url}{content_id}"
        ydl_opts = {
            'quiet': True,
            'no_warnings': True,
            'noplaylist': True,
            'skip_download': True,
            'socket_timeout': self.settings.socket_timeout,
        }

        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except yt_dlp.DownloadError as e:
            logger.warning(f"Failed to get video metadata for {content_id}: {e}")
            raise CatalogError(f"yt-dlp failed: {e}") from e

        video_formats = []
        audio_formats = []
        for fmt in info.get("formats") or []:
            vcodec = fmt.get("vcodec") or "none"
            acodec = fmt.get("acodec") or "none"
            entry = {
                "format_id": fmt.get("format_id"),
                "ext": fmt.get("ext"),
                "quality": fmt.get("format_note") or fmt.get("resolution") or fmt.get("abr"),
            }
            if vcodec != "none" and acodec != "none":
                video_formats.append(entry)
            elif vcodec == "none" and acodec != "none":
                audio_formats.append(entry)

        return {
            "id": content_id,
            "title": info.get("title", "Unknown"),
            "thumbnail": info.get("thumbnail"),
            "duration": format_duration(info.get("duration")),
            "uploader": info.get("uploader", "Unknown"),
            "videoFormats": video_formats,
            "audioFormats": audio_formats,
        }

