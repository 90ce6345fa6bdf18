"""
Job status reporting.

The orchestrator publishes coarse job progress through a reporter so an
external poller (HTTP layer, dashboard) can observe background runs.
"""

import threading
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Literal, Protocol

from caseload.utils.logging import get_logger

log = get_logger(__name__)

JobStatus = Literal["pending", "in_progress", "completed", "error"]
FINISHED_STATUSES: frozenset[str] = frozenset({"completed", "error"})


@dataclass(frozen=True)
class StatusUpdate:
    """Latest known status of one job."""

    job_id: str
    status: JobStatus
    message: str
    progress: int


class StatusReporter(Protocol):
    """Receives status updates for ingestion jobs."""

    def update(
        self,
        job_id: str,
        status: JobStatus,
        message: str,
        progress: int,
    ) -> None:
        """
        Record a status update.

        Args:
            job_id: Job identifier.
            status: New job status.
            message: Human-readable description.
            progress: Completion percentage (0-100).
        """
        ...


class LogStatusReporter:
    """Writes status updates to the structured log."""

    def update(
        self,
        job_id: str,
        status: JobStatus,
        message: str,
        progress: int,
    ) -> None:
        log.info("Job status", job_id=job_id, status=status, message=message, progress=progress)


class MemoryStatusReporter:
    """
    Keeps the latest update per job in memory.

    Thread-safe, so a background worker can publish while a caller polls.
    Memory stays bounded: each job keeps its most recent updates only, and
    once more than ``max_jobs`` jobs are tracked the oldest finished ones
    are forgotten. Jobs still pending or in progress are never evicted.
    """

    def __init__(self, *, max_jobs: int = 1_000, history_per_job: int = 100) -> None:
        self.max_jobs = max_jobs
        self.history_per_job = history_per_job
        self._updates: OrderedDict[str, StatusUpdate] = OrderedDict()
        self._history: dict[str, deque[StatusUpdate]] = {}
        self._lock = threading.Lock()

    def update(
        self,
        job_id: str,
        status: JobStatus,
        message: str,
        progress: int,
    ) -> None:
        entry = StatusUpdate(job_id, status, message, max(0, min(100, progress)))
        with self._lock:
            self._updates[job_id] = entry
            self._updates.move_to_end(job_id)
            history = self._history.setdefault(job_id, deque(maxlen=self.history_per_job))
            history.append(entry)
            self._evict_finished()

    def _evict_finished(self) -> None:
        excess = len(self._updates) - self.max_jobs
        if excess <= 0:
            return
        finished = [
            job_id for job_id, entry in self._updates.items() if entry.status in FINISHED_STATUSES
        ]
        for job_id in finished[:excess]:
            del self._updates[job_id]
            del self._history[job_id]

    def get(self, job_id: str) -> StatusUpdate | None:
        """Latest update for a job, or None if it was never reported or was evicted."""
        with self._lock:
            return self._updates.get(job_id)

    def history(self, job_id: str) -> list[StatusUpdate]:
        """Recent updates recorded for a job, oldest first."""
        with self._lock:
            return list(self._history.get(job_id, ()))
