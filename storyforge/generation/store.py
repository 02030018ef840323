"""Job registry abstraction used by :class:`GenerationJobManager`."""

from __future__ import annotations

from threading import Lock
from typing import Protocol

from .models import Job


class JobStore(Protocol):
    def get(self, job_id: str) -> Job | None:
        """Return a snapshot of the job or ``None`` if unknown."""
        ...

    def put(self, job: Job) -> None:
        ...

    def delete(self, job_id: str) -> None:
        ...

    def list_ids(self) -> list[str]:
        ...


class InMemoryJobStore:
    """Process-lifetime registry that only ever hands out copies."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: dict[str, Job] = {}

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job is not None else None

    def put(self, job: Job) -> None:
        snapshot = job.snapshot()
        with self._lock:
            self._jobs[job.id] = snapshot

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._jobs)


__all__ = ["InMemoryJobStore", "JobStore"]
