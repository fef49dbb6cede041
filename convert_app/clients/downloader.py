"""Source media fetcher built on yt-dlp."""

import glob
import logging
import os
from dataclasses import dataclass
from typing import Optional

import yt_dlp

from utils.config import DownloaderSettings
from utils.exceptions import FetchFailedError

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Information about a fetched source file"""
    path: str
    title: Optional[str] = None


def remove_fetch_artifacts(input_path: str) -> int:
    """Delete a fetched file together with any partial pieces yt-dlp left.

    yt-dlp writes ``<stem>.fNNN.<ext>`` stream files and ``.part`` files next
    to the final merged file; all of them share the job's stem.

    Returns:
        Number of files removed
    """
    stem, _ = os.path.splitext(input_path)
    removed = 0
    for path in set(glob.glob(glob.escape(stem) + '*')) | {input_path}:
        try:
            os.remove(path)
            removed += 1
        except FileNotFoundError:
            continue
    return removed


class MediaFetcher:
    """Downloads the best video+audio streams remuxed into one container."""

    def __init__(self, settings: DownloaderSettings):
        """Initialize the fetcher.

        Args:
            settings: Downloader configuration
        """
        self.settings = settings

    def source_url(self, content_id: str) -> str:
        """URL yt-dlp is pointed at for a content identifier."""
        return f"{self.settings.content_base_url}{content_id}"

    def build_options(self, input_path: str) -> dict:
        """yt-dlp options writing the merged file at ``input_path``."""
        stem, _ = os.path.splitext(input_path)
        return {
            'format': 'bestvideo+bestaudio/best',
            'merge_output_format': self.settings.merge_format,
            'postprocessors': [{
                'key': 'FFmpegVideoRemuxer',
                'preferedformat': self.settings.merge_format,
            }],
            'outtmpl': stem + '.%(ext)s',
            'noplaylist': True,
            'quiet': True,
            'no_warnings': True,
            'noprogress': True,
            'socket_timeout': self.settings.socket_timeout,
            'logger': logger,
        }

    def fetch(self, content_id: str, input_path: str) -> FetchResult:
        """Download a content item to the job's intermediate path.

        Runs exactly once; nothing is retried here.

        Args:
            content_id: Identifier of the source content
            input_path: Where the merged file must end up

        Returns:
            FetchResult describing the downloaded file

        Raises:
            FetchFailedError: On any download failure; no file with the job's
                intermediate stem is left on disk
        """
        url = self.source_url(content_id)
        os.makedirs(os.path.dirname(input_path), exist_ok=True)
        logger.info(f"Fetching {url} -> {input_path}")

        try:
            with yt_dlp.YoutubeDL(self.build_options(input_path)) as ydl:
                info = ydl.extract_info(url, download=True)

            if not os.path.exists(input_path) or os.path.getsize(input_path) == 0:
                raise FetchFailedError(f"Downloaded file not found or empty: {input_path}")

            info = info or {}
            logger.info(f"Fetched {content_id}: {os.path.getsize(input_path)} bytes")
            return FetchResult(
                path=input_path,
                title=info.get('title'),
            )

        except FetchFailedError:
            remove_fetch_artifacts(input_path)
            raise
        except yt_dlp.DownloadError as e:
            remove_fetch_artifacts(input_path)
            error_msg = str(e)
            if "404" in error_msg or "not found" in error_msg.lower() or "unavailable" in error_msg.lower():
                raise FetchFailedError(f"Content not found or unavailable: {content_id}") from e
            raise FetchFailedError(f"Failed to download content: {error_msg}") from e
        except Exception as e:
            remove_fetch_artifacts(input_path)
            raise FetchFailedError(f"Unexpected error during download: {str(e)}") from e
