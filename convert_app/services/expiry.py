"""Per-job expiry timers.

Every job gets one timer at creation.  When it fires the job's files and
registry entry are reclaimed no matter what state the job is in, which
bounds the lifetime of everything a job owns.
"""
import logging
import threading
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Arms and cancels one delayed cleanup callback per job."""

    def __init__(self, ttl_seconds: float, timer_factory: Callable = threading.Timer):
        """Initialize the sweeper.

        Args:
            ttl_seconds: Delay between arming and firing
            timer_factory: ``threading.Timer``-compatible factory; tests pass a
                fake that fires on demand
        """
        self.ttl_seconds = ttl_seconds
        self._timer_factory = timer_factory
        self._timers: Dict[str, object] = {}
        self._lock = threading.Lock()

    def arm(self, job_id: str, callback: Callable[[str], None]) -> None:
        """Schedule ``callback(job_id)`` after the TTL."""
        timer = self._timer_factory(self.ttl_seconds, self._fire, args=(job_id, callback))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(job_id, None)
            self._timers[job_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()
        logger.debug(f"Expiry armed for job {job_id} ({self.ttl_seconds}s)")

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending timer. Unknown or already fired ids are a no-op.

        Returns:
            True if a pending timer was cancelled
        """
        with self._lock:
            timer = self._timers.pop(job_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def pending(self) -> int:
        """Number of armed timers (for monitoring/debugging)."""
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info(f"Cancelled {len(timers)} pending expiry timers")

    def _fire(self, job_id: str, callback: Callable[[str], None]) -> None:
        with self._lock:
            self._timers.pop(job_id, None)
        try:
            callback(job_id)
        except Exception:
            logger.exception(f"Expiry cleanup failed for job {job_id}")
