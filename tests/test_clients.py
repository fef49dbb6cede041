"""Test suite for the yt-dlp based clients."""
import os
from unittest.mock import MagicMock, patch

import pytest
import yt_dlp

from convert_app.clients.catalog import CatalogClient, format_duration
from convert_app.clients.downloader import MediaFetcher, remove_fetch_artifacts
from utils.config import DownloaderSettings
from utils.exceptions import CatalogError, FetchFailedError


def _mock_ydl(mock_ydl_class, extract_info):
    ydl = MagicMock()
    ydl.extract_info.side_effect = extract_info
    mock_ydl_class.return_value.__enter__.return_value = ydl
    return ydl


class TestMediaFetcher:
    """Test source fetching through yt-dlp."""

    def setup_method(self):
        self.fetcher = MediaFetcher(DownloaderSettings(content_base_url="https://media.example/watch?v="))

    def test_build_options(self, tmp_path):
        input_path = str(tmp_path / "temp_abc_input.mkv")
        opts = self.fetcher.build_options(input_path)

        assert opts["format"] == "bestvideo+bestaudio/best"
        assert opts["merge_output_format"] == "mkv"
        assert opts["outtmpl"] == str(tmp_path / "temp_abc_input") + ".%(ext)s"
        assert opts["noplaylist"] is True

    @patch("convert_app.clients.downloader.yt_dlp.YoutubeDL")
    def test_fetch_success(self, mock_ydl_class, tmp_path):
        input_path = str(tmp_path / "temp_abc_input.mkv")

        def extract_info(url, download):
            assert url == "https://media.example/watch?v=abc"
            assert download is True
            with open(input_path, "wb") as fh:
                fh.write(b"video")
            return {"title": "A Title", "duration": 12}

        _mock_ydl(mock_ydl_class, extract_info)

        result = self.fetcher.fetch("abc", input_path)

        assert result.path == input_path
        assert result.title == "A Title"

    @patch("convert_app.clients.downloader.yt_dlp.YoutubeDL")
    def test_download_error_removes_partials(self, mock_ydl_class, tmp_path):
        input_path = str(tmp_path / "temp_abc_input.mkv")

        def extract_info(url, download):
            (tmp_path / "temp_abc_input.f137.mp4.part").write_bytes(b"partial")
            raise yt_dlp.DownloadError("ERROR: Video unavailable")

        _mock_ydl(mock_ydl_class, extract_info)

        with pytest.raises(FetchFailedError, match="not found or unavailable"):
            self.fetcher.fetch("abc", input_path)

        assert os.listdir(tmp_path) == []

    @patch("convert_app.clients.downloader.yt_dlp.YoutubeDL")
    def test_generic_download_error(self, mock_ydl_class, tmp_path):
        _mock_ydl(mock_ydl_class, yt_dlp.DownloadError("ERROR: network timeout"))

        with pytest.raises(FetchFailedError, match="Failed to download content"):
            self.fetcher.fetch("abc", str(tmp_path / "temp_abc_input.mkv"))

    @patch("convert_app.clients.downloader.yt_dlp.YoutubeDL")
    def test_missing_output_file(self, mock_ydl_class, tmp_path):
        _mock_ydl(mock_ydl_class, lambda url, download: {"title": "x"})

        with pytest.raises(FetchFailedError, match="not found or empty"):
            self.fetcher.fetch("abc", str(tmp_path / "temp_abc_input.mkv"))

    @patch("convert_app.clients.downloader.yt_dlp.YoutubeDL")
    def test_unexpected_error_is_wrapped(self, mock_ydl_class, tmp_path):
        _mock_ydl(mock_ydl_class, ValueError("weird"))

        with pytest.raises(FetchFailedError, match="Unexpected error"):
            self.fetcher.fetch("abc", str(tmp_path / "temp_abc_input.mkv"))


def test_remove_fetch_artifacts_keeps_other_jobs(tmp_path):
    (tmp_path / "temp_a_input.mkv").write_bytes(b"1")
    (tmp_path / "temp_a_input.f251.webm").write_bytes(b"2")
    (tmp_path / "temp_b_input.mkv").write_bytes(b"3")

    removed = remove_fetch_artifacts(str(tmp_path / "temp_a_input.mkv"))

    assert removed == 2
    assert os.listdir(tmp_path) == ["temp_b_input.mkv"]
    assert remove_fetch_artifacts(str(tmp_path / "temp_a_input.mkv")) == 0


class TestCatalogClient:

    @patch("convert_app.clients.catalog.yt_dlp.YoutubeDL")
    def test_get_video_info(self, mock_ydl_class):
        _mock_ydl(mock_ydl_class, lambda url, download: {
            "title": "Clip",
            "thumbnail": "https://img.example/clip.jpg",
            "duration": 3725,
            "uploader": "Someone",
            "formats": [
                {"format_id": "18", "ext": "mp4", "vcodec": "avc1", "acodec": "mp4a", "format_note": "360p"},
                {"format_id": "140", "ext": "m4a", "vcodec": "none", "acodec": "mp4a", "format_note": "medium"},
                {"format_id": "137", "ext": "mp4", "vcodec": "avc1", "acodec": "none", "format_note": "1080p"},
            ],
        })

        info = CatalogClient(DownloaderSettings()).get_video_info("abc")

        assert info["title"] == "Clip"
        assert info["duration"] == "01:02:05"
        assert info["videoFormats"] == [{"format_id": "18", "ext": "mp4", "quality": "360p"}]
        assert info["audioFormats"] == [{"format_id": "140", "ext": "m4a", "quality": "medium"}]

    @patch("convert_app.clients.catalog.yt_dlp.YoutubeDL")
    def test_download_error(self, mock_ydl_class):
        _mock_ydl(mock_ydl_class, yt_dlp.DownloadError("ERROR: private video"))

        with pytest.raises(CatalogError):
            CatalogClient(DownloaderSettings()).get_video_info("abc")


@pytest.mark.parametrize("seconds,expected", [
    (None, "00:00"),
    (0, "00:00"),
    (59, "00:59"),
    (61.7, "01:01"),
    (3600, "01:00:00"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
