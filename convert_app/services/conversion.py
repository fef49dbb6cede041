"""Conversion job service.

Owns the job registry, the expiry sweeper and the external tool clients,
and drives a job through fetch, transcode, progress tracking, delivery
and cleanup.
"""

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from convert_app.clients.downloader import MediaFetcher, remove_fetch_artifacts
from convert_app.clients.transcoder import TranscodeHandle, TranscoderSupervisor
from convert_app.services.expiry import ExpirySweeper
from convert_app.services.job_registry import JobRegistry
from convert_app.services.progress import ProgressEvent
from models.job import Job
from utils.config import AppConfig
from utils.exceptions import (
    FetchFailedError,
    JobNotFoundError,
    NotReadyError,
    StreamFailedError,
    TranscodeSpawnError,
)

logger = logging.getLogger(__name__)

ProgressListener = Callable[[str, dict], None]

TERMINATE_TIMEOUT = 5


@dataclass
class Delivery:
    """An artifact ready to be streamed to a client exactly once."""
    job_id: str
    filename: str
    size: Optional[int]
    stream: Iterator[bytes]


def _remove_file(path: str) -> bool:
    """Delete a file, reporting whether it existed."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


class ConversionService:
    """Runs conversion jobs and answers progress and delivery requests."""

    def __init__(
        self,
        config: AppConfig,
        registry: Optional[JobRegistry] = None,
        fetcher: Optional[MediaFetcher] = None,
        supervisor: Optional[TranscoderSupervisor] = None,
        sweeper: Optional[ExpirySweeper] = None,
    ):
        """Initialize the service.

        Args:
            config: Application configuration
            registry: Job registry (defaults to a fresh in-memory one)
            fetcher: Source media fetcher
            supervisor: ffmpeg process supervisor
            sweeper: Expiry timer owner
        """
        self.config = config
        self.registry = registry or JobRegistry(config.work_dir)
        self.fetcher = fetcher or MediaFetcher(config.downloader)
        self.supervisor = supervisor or TranscoderSupervisor(config.ffmpeg)
        self.sweeper = sweeper or ExpirySweeper(config.job_ttl_seconds)
        self._handles: Dict[str, TranscodeHandle] = {}
        # Jobs claimed by a delivery: evicted from the registry, files not yet removed
        self._delivering: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._listeners: List[ProgressListener] = []
        logger.info(f"Conversion service initialized (work_dir={config.work_dir}, ttl={config.job_ttl_seconds}s)")

    def add_listener(self, listener: ProgressListener) -> None:
        """Register a callback invoked with ``(job_id, payload)`` on every progress change."""
        self._listeners.append(listener)

    def start_conversion(self, content_id: str, requested_format: str, media_type: str) -> Job:
        """Create a job, fetch its source and spawn the transcoder.

        The fetch runs in the caller's thread; the transcode continues in the
        background after this returns.

        Args:
            content_id: Identifier of the source content
            requested_format: Requested output format or quality alias
            media_type: ``audio`` or ``video``

        Returns:
            The started job

        Raises:
            InvalidFormatError: If the format is not allowed (nothing is created)
            FetchFailedError: If the source could not be downloaded
            TranscodeSpawnError: If ffmpeg could not be started
        """
        job = self.registry.create(content_id, requested_format, media_type)
        os.makedirs(self.config.work_dir, exist_ok=True)
        self.sweeper.arm(job.id, self.expire)

        try:
            result = self.fetcher.fetch(content_id, job.input_path)
            if job.id not in self.registry:
                raise FetchFailedError(f"Job {job.id} expired while fetching")
            if result.title:
                self.registry.set_display_name(job.id, result.title)

            handle = self.supervisor.start(job, self._on_event, self._on_exit)
        except (FetchFailedError, TranscodeSpawnError) as e:
            logger.error(f"Job {job.id} aborted: {e}")
            self.cleanup(job.id, job)
            raise

        with self._lock:
            self._handles[job.id] = handle
        if job.id not in self.registry:
            # Swept while ffmpeg was starting
            self.cleanup(job.id, job)

        return job

    def get_progress(self, job_id: str) -> dict:
        """Return ``{progress, ready}`` for a job.

        Raises:
            JobNotFoundError: If the job id is unknown
        """
        payload = self.registry.snapshot(job_id)
        if payload is None:
            raise JobNotFoundError("Job not found")
        return payload

    def open_delivery(self, job_id: str) -> Delivery:
        """Claim a job's artifact for a single-use stream.

        The job leaves the registry as soon as it is claimed, so a second
        request for the same id is refused even while the first transfer is
        still running. The stream deletes the artifact when it finishes,
        fails, or is closed early; a stream that is never read is reclaimed
        by expiry.

        Raises:
            NotReadyError: If the job is unknown, already claimed, or its
                artifact is missing
        """
        with self._lock:
            job = self.registry.get(job_id)
            if job is None or not os.path.exists(job.output_path):
                raise NotReadyError("Download not ready")
            size = os.path.getsize(job.output_path)
            if self.registry.evict(job_id) is None:
                raise NotReadyError("Download not ready")
            self._delivering[job_id] = job

        logger.info(f"Job {job_id} claimed for delivery ({size} bytes)")
        return Delivery(
            job_id=job.id,
            filename=job.filename,
            size=size,
            stream=self._stream_artifact(job),
        )

    def cleanup(self, job_id: str, job: Optional[Job] = None) -> bool:
        """Reclaim everything a job owns. Safe to call any number of times.

        Args:
            job_id: Job to reclaim
            job: The job as known to the caller; its paths are used when the
                entry has already been evicted by someone else

        Returns:
            True if anything (entry, file or process) was reclaimed
        """
        evicted = self.registry.evict(job_id)
        self.sweeper.cancel(job_id)

        with self._lock:
            handle = self._handles.pop(job_id, None)
            claimed = self._delivering.pop(job_id, None)
        reclaimed = evicted is not None or claimed is not None
        job = evicted or claimed or job

        if handle is not None and handle.returncode is None and handle.process.poll() is None:
            logger.info(f"Terminating ffmpeg for job {job_id} (PID {handle.pid})")
            self._stop_process(handle.process)
            reclaimed = True

        if job is not None:
            if _remove_file(job.output_path):
                reclaimed = True
            if remove_fetch_artifacts(job.input_path):
                reclaimed = True

        return reclaimed

    def expire(self, job_id: str) -> None:
        """Expiry callback: reclaim a job regardless of its progress."""
        if self.cleanup(job_id):
            logger.info(f"Expired and cleaned up job {job_id}")

    def shutdown(self) -> None:
        """Cancel pending timers and stop running transcoders."""
        self.sweeper.shutdown()
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            if handle.process.poll() is None:
                handle.process.terminate()

    @staticmethod
    def _stop_process(process) -> None:
        # ffmpeg must be gone before its output file is removed
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning(f"ffmpeg (PID {process.pid}) ignored SIGTERM, killing it")
            process.kill()
            process.wait()

    def _stream_artifact(self, job: Job) -> Iterator[bytes]:
        try:
            with open(job.output_path, 'rb') as fh:
                for chunk in iter(lambda: fh.read(self.config.stream_chunk_size), b''):
                    yield chunk
            logger.info(f"Job {job.id} delivered as {job.filename}")
        except OSError as e:
            logger.error(f"Stream error for job {job.id}: {e}")
            raise StreamFailedError(f"Failed to stream file: {e}") from e
        finally:
            self.cleanup(job.id, job)

    def _on_event(self, job_id: str, event: ProgressEvent) -> None:
        if event.done:
            self.registry.mark_done(job_id)
        else:
            self.registry.update_progress(job_id, event.percent)
        self._notify(job_id)

    def _on_exit(self, job_id: str, returncode: Optional[int]) -> None:
        # Any exit counts as completion; readiness still needs the artifact on disk
        job = self.registry.mark_done(job_id, exit_code=returncode)
        if job is None:
            return
        remove_fetch_artifacts(job.input_path)
        if returncode:
            logger.warning(f"Job {job_id} transcoder exited with code {returncode}")
        self._notify(job_id)

    def _notify(self, job_id: str) -> None:
        if not self._listeners:
            return
        payload = self.registry.snapshot(job_id)
        if payload is None:
            return
        payload = {'jobId': job_id, **payload}
        for listener in self._listeners:
            try:
                listener(job_id, payload)
            except Exception:
                logger.exception(f"Progress listener failed for job {job_id}")
