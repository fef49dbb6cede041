"""
ffmpeg process supervision.

Builds the ffmpeg command for a job, spawns exactly one process per job and
follows its ``-progress`` channel from a dedicated reader thread.
"""

import logging
import subprocess
import threading
from typing import Callable, Iterator, List, Optional

from convert_app.services.progress import ProgressEvent, ProgressParser
from models.job import Job, MEDIA_TYPE_AUDIO
from utils.config import FFmpegSettings
from utils.exceptions import TranscodeSpawnError

logger = logging.getLogger(__name__)

# ffmpeg muxer names for the audio containers clients may request
AUDIO_MUXERS = {
    'mp3': 'mp3',
    'aac': 'adts',
    'm4a': 'ipod',
    'opus': 'opus',
    'wav': 'wav',
    'flac': 'flac',
}

READ_CHUNK_SIZE = 4096


class TranscodeHandle:
    """A running ffmpeg process owned by one job.

    ``events()`` lazily yields parsed progress events from the process's
    stderr.  The supervisor's reader thread is the only consumer.
    """

    def __init__(self, job_id: str, process: subprocess.Popen):
        self.job_id = job_id
        self.process = process
        self.parser = ProgressParser()
        self._thread: Optional[threading.Thread] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def events(self) -> Iterator[ProgressEvent]:
        """Yield progress events until ffmpeg closes its stderr.

        Diagnostic lines are logged as they arrive; they never stop the job.
        """
        stream = self.process.stderr
        if stream is None:
            return

        for chunk in iter(lambda: stream.read1(READ_CHUNK_SIZE), b''):
            for event in self.parser.feed(chunk):
                yield event
            self._log_diagnostics()

        for event in self.parser.flush():
            yield event
        self._log_diagnostics()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for the reader thread (and so the process) to finish.

        Returns:
            The process exit code, or None if still running after ``timeout``
        """
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                return None
        return self.process.returncode

    def _log_diagnostics(self) -> None:
        for line in self.parser.drain_diagnostics():
            logger.warning(f"ffmpeg [{self.job_id}]: {line}")


class TranscoderSupervisor:
    """Spawns and follows ffmpeg processes."""

    def __init__(self, settings: FFmpegSettings):
        """Initialize the supervisor.

        Args:
            settings: ffmpeg configuration
        """
        self.settings = settings

    def build_command(self, input_path: str, output_path: str, media_type: str,
                      extension: str) -> List[str]:
        """Build the ffmpeg command for a job.

        Args:
            input_path: Fetched intermediate file
            output_path: Artifact to produce
            media_type: ``audio`` or ``video``
            extension: Output container token

        Returns:
            ffmpeg command list
        """
        cmd = [
            self.settings.path,
            "-hide_banner",
            "-nostdin",
            "-loglevel", self.settings.loglevel,
            "-y",
            "-i", input_path,
        ]

        if media_type == MEDIA_TYPE_AUDIO:
            # Audio only: drop video, fixed bitrate, requested container
            cmd.extend(["-f", AUDIO_MUXERS.get(extension, extension)])
            cmd.extend(["-vn"])
            cmd.extend(["-b:a", self.settings.audio_bitrate])
        else:
            cmd.extend(["-f", "mp4"])
            cmd.extend(["-c:v", self.settings.video_encoder])
            cmd.extend(["-preset", self.settings.video_preset])
            cmd.extend(["-crf", str(self.settings.video_crf)])
            cmd.extend(["-c:a", self.settings.audio_encoder])
            cmd.extend(["-b:a", self.settings.audio_bitrate])
            # moov atom up front for progressive playback
            cmd.extend(["-movflags", "+faststart"])

        # Progress key/value lines share stderr with diagnostics
        cmd.extend(["-progress", "pipe:2"])
        cmd.append(output_path)
        return cmd

    def start(
        self,
        job: Job,
        on_event: Callable[[str, ProgressEvent], None],
        on_exit: Callable[[str, Optional[int]], None],
    ) -> TranscodeHandle:
        """Spawn ffmpeg for a job and start following its progress.

        Args:
            job: Job whose intermediate file is transcoded
            on_event: Called with ``(job_id, event)`` for every progress event
            on_exit: Called with ``(job_id, returncode)`` once the process exits

        Returns:
            TranscodeHandle for the running process

        Raises:
            TranscodeSpawnError: If the process could not be started
        """
        command = self.build_command(job.input_path, job.output_path, job.media_type, job.extension)
        logger.debug(f"Running: {' '.join(command)}")

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start ffmpeg for job {job.id}: {e}")
            raise TranscodeSpawnError(f"FFmpeg execution failed: {e}") from e

        logger.info(f"Started ffmpeg for job {job.id} with PID {process.pid}")

        handle = TranscodeHandle(job.id, process)
        handle._thread = threading.Thread(
            target=self._follow,
            args=(handle, on_event, on_exit),
            daemon=True,
            name=f"transcode-{job.id[:8]}",
        )
        handle._thread.start()
        return handle

    def _follow(self, handle: TranscodeHandle, on_event, on_exit) -> None:
        returncode = None
        try:
            for event in handle.events():
                on_event(handle.job_id, event)
        except Exception:
            logger.exception(f"Error while reading ffmpeg output for job {handle.job_id}")
        finally:
            try:
                returncode = handle.process.wait()
            finally:
                if handle.process.stderr is not None:
                    handle.process.stderr.close()
                logger.info(f"ffmpeg for job {handle.job_id} exited with code {returncode}")
                on_exit(handle.job_id, returncode)
