"""Data models used by the book generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


class JobState(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {JobState.COMPLETE, JobState.FAILED, JobState.CANCELLED}


@dataclass(frozen=True, slots=True)
class Page:
    """A fixed-size chunk of chapter text, numbered across the whole book."""

    number: int
    chapter: int
    text: str


@dataclass(frozen=True, slots=True)
class GenerationContext:
    """Session signals forwarded to every chapter request."""

    terms: tuple[str, ...] = ()
    style: str | None = None


@dataclass(slots=True)
class Job:
    """Progress of one book generation run.

    The background task owns the live instance; everybody else sees copies
    produced by :meth:`snapshot`.
    """

    id: str
    title: str
    chapters_total: int
    state: JobState = JobState.PENDING
    chapters_completed: int = 0
    pages: list[Page] = field(default_factory=list)
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None

    @property
    def progress(self) -> float:
        if self.chapters_total <= 0:
            return 0.0
        return self.chapters_completed / self.chapters_total

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def transition(self, state: JobState, *, error: str | None = None) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Job {self.id} is already {self.state.value}")
        self.state = state
        if error is not None:
            self.error = error
        self.touch()

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def snapshot(self) -> "Job":
        return replace(self, pages=list(self.pages))


__all__ = ["GenerationContext", "Job", "JobState", "Page"]
