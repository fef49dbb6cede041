"""In-memory registry of conversion jobs.

The registry is the single source of truth for progress and readiness
queries and for cleanup.  Entries live only for the lifetime of the
process; each service instance owns its own registry.
"""
import logging
import os
import threading
import uuid
from typing import Dict, Optional

from models.job import Job, resolve_output_format, sanitize_display_name

logger = logging.getLogger(__name__)


def _ready(job: Job) -> bool:
    """A job is ready when it is at 100%, done, and its artifact exists."""
    return job.progress >= 100 and job.done and os.path.exists(job.output_path)


class JobRegistry:
    """Maps job ids to :class:`Job` entries.

    One lock guards the table.  Every mutation touches a single entry, so
    jobs never contend on anything but the dictionary itself.
    """

    def __init__(self, work_dir: str):
        """Initialize the registry.

        Args:
            work_dir: Directory holding intermediate and output files
        """
        self.work_dir = work_dir
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, content_id: str, requested_format: str, media_type: str) -> Job:
        """Allocate a job for a conversion request.

        Args:
            content_id: Identifier of the source content
            requested_format: Requested output format or quality alias
            media_type: ``audio`` or ``video``

        Returns:
            The newly registered job

        Raises:
            InvalidFormatError: If the format is not allowed for the media type;
                nothing is registered in that case
        """
        extension = resolve_output_format(requested_format, media_type)

        job_id = uuid.uuid4().hex
        job = Job(
            id=job_id,
            content_id=content_id,
            media_type=media_type,
            extension=extension,
            output_path=os.path.join(self.work_dir, f"temp_{job_id}.{extension}"),
            input_path=os.path.join(self.work_dir, f"temp_{job_id}_input.mkv"),
            display_name=sanitize_display_name(f"yt-{content_id}"),
        )

        with self._lock:
            # uuid4 collisions are not expected; refuse rather than overwrite
            if job_id in self._jobs:
                raise RuntimeError(f"Job id collision: {job_id}")
            self._jobs[job_id] = job

        logger.info(f"Job {job_id} created: content={content_id} type={media_type} ext={extension}")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        """Return the job for an id, or None if unknown."""
        with self._lock:
            return self._jobs.get(job_id)

    def update_progress(self, job_id: str, percent: int) -> Optional[Job]:
        """Record a progress estimate, keeping the highest value seen."""
        percent = max(0, min(100, int(percent)))
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if percent > job.progress:
                job.progress = percent
            return job

    def mark_done(self, job_id: str, exit_code: Optional[int] = None) -> Optional[Job]:
        """Force a job to 100% and done, optionally recording the exit code."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            job.progress = 100
            job.done = True
            if exit_code is not None:
                job.exit_code = exit_code
            return job

    def set_display_name(self, job_id: str, title: str) -> Optional[Job]:
        """Replace a job's download name with a sanitized title."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            job.display_name = sanitize_display_name(title)
            return job

    def evict(self, job_id: str) -> Optional[Job]:
        """Remove a job. Evicting an unknown id is a no-op.

        Returns:
            The removed job, or None if it was already gone
        """
        with self._lock:
            return self._jobs.pop(job_id, None)

    def snapshot(self, job_id: str) -> Optional[dict]:
        """Return the client-facing ``{progress, ready}`` view of a job."""
        job = self.get(job_id)
        if job is None:
            return None
        return {'progress': job.progress, 'ready': _ready(job)}

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id) -> bool:
        with self._lock:
            return job_id in self._jobs
