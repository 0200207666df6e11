"""Process-wide registry of import and export jobs."""
from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generic, List, Optional, TypeVar, Union

from .models import ExportJob, ImportJob

LOGGER = logging.getLogger(__name__)

Job = Union[ImportJob, ExportJob]
J = TypeVar("J", ImportJob, ExportJob)

DEFAULT_RETENTION = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRegistry(Generic[J]):
    """Thread-safe map from job id to job state.

    Readers always receive deep copies, so a poll never observes a job halfway
    through an update. Jobs are only dropped by :meth:`sweep`, once their
    ``completed_at`` is older than the retention window. State is in-process
    only; a restart forgets every job.
    """

    def __init__(self, retention: timedelta = DEFAULT_RETENTION) -> None:
        self._retention = retention
        self._jobs: Dict[str, J] = {}
        self._lock = threading.RLock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def retention(self) -> timedelta:
        return self._retention

    def create(self, job: J) -> J:
        with self._lock:
            if job.job_id in self._jobs:
                raise KeyError(f"Job '{job.job_id}' is already registered")
            self._jobs[job.job_id] = job
            return copy.deepcopy(job)

    def get(self, job_id: str) -> Optional[J]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def update(self, job_id: str, mutate: Callable[[J], None]) -> Optional[J]:
        """Apply ``mutate`` under the registry lock.

        Terminal jobs are frozen: the mutation is skipped and the current
        snapshot returned unchanged.
        """

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if job.is_terminal:
                LOGGER.debug("Ignoring update to terminal job %s", job_id)
            else:
                mutate(job)
            return copy.deepcopy(job)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Remove jobs completed longer ago than the retention window."""

        cutoff = (now or utcnow()) - self._retention
        with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.completed_at is not None and job.completed_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            LOGGER.info("Swept %s stale jobs", len(stale))
        return len(stale)

    def start_sweeper(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            LOGGER.debug("Job sweeper disabled")
            return
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._run_sweeper,
            args=(interval_seconds,),
            name="job-registry-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def _run_sweeper(self, interval_seconds: float) -> None:
        while not self._stop_event.wait(interval_seconds):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - keep the sweeper alive
                LOGGER.exception("Job sweep failed")


__all__ = ["DEFAULT_RETENTION", "Job", "JobRegistry", "utcnow"]
