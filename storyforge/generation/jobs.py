"""Background book generation with pollable, snapshot-based status."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Event, Lock
from time import perf_counter
from typing import Any, Protocol
from uuid import uuid4

from loguru import logger

from storyforge.config import AppConfig
from storyforge.errors import GenerationError, NotFoundError, ValidationError
from storyforge.models import Chapter, Structure

from .metrics import GenerationMetricsRegistry
from .models import GenerationContext, Job, JobState
from .paginator import Paginator
from .store import InMemoryJobStore, JobStore

DEFAULT_MAX_PAGES = 96


class ChapterWriter(Protocol):
    def write_chapter(self, chapter: Chapter, structure: Structure, *, context: GenerationContext) -> str:
        """Return the full prose of ``chapter``."""
        ...


class GenerationJobManager:
    """Runs one background task per job, generating chapters strictly in order.

    Jobs for different structures run in parallel on a thread pool. Within a job
    chapters are sequential because page numbers form a single sequence shared
    by the whole book.
    """

    def __init__(
        self,
        writer: ChapterWriter,
        *,
        store: JobStore | None = None,
        paginator: Paginator | None = None,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_workers: int = 4,
        metrics: GenerationMetricsRegistry | None = None,
    ) -> None:
        self._writer = writer
        self._store: JobStore = store if store is not None else InMemoryJobStore()
        self._paginator = paginator or Paginator()
        self._max_pages = max_pages
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="storyforge-job")
        self._lock = Lock()
        self._futures: dict[str, Future[None]] = {}
        self._cancel_events: dict[str, Event] = {}
        self.metrics = metrics or GenerationMetricsRegistry()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        writer: ChapterWriter,
        *,
        store: JobStore | None = None,
    ) -> "GenerationJobManager":
        if config.generation is None:
            raise ValueError("generation config is required for book generation")
        gen_cfg = config.generation
        return cls(
            writer,
            store=store,
            paginator=Paginator(gen_cfg.words_per_page),
            max_pages=gen_cfg.max_pages,
            max_workers=gen_cfg.max_workers,
        )

    @property
    def max_pages(self) -> int:
        return self._max_pages

    # ------------------------------------------------------------------
    def validate_structure(self, structure: Structure) -> None:
        if not structure.chapters:
            raise ValidationError("Structure must contain at least one chapter")
        if structure.target_pages > self._max_pages:
            raise ValidationError(
                f"Structure targets {structure.target_pages} pages, above the {self._max_pages}-page ceiling"
            )
        if structure.total_pages is not None and structure.total_pages > self._max_pages:
            raise ValidationError(
                f"Structure declares {structure.total_pages} pages, above the {self._max_pages}-page ceiling"
            )

    def start_job(self, structure: Structure, *, context: GenerationContext | None = None) -> str:
        """Validate ``structure``, register a job and schedule it. Returns the job id."""
        self.validate_structure(structure)

        job = Job(id=f"gen_{uuid4().hex}", title=structure.title, chapters_total=len(structure.chapters))
        self._store.put(job)
        job.transition(JobState.GENERATING)
        self._store.put(job)

        cancel_event = Event()
        self.metrics.record_start()
        try:
            with self._lock:
                self._cancel_events[job.id] = cancel_event
                future = self._executor.submit(
                    self._run, job, structure, context or GenerationContext(), cancel_event
                )
                self._futures[job.id] = future
        except RuntimeError as exc:
            self._finish(job, JobState.FAILED, perf_counter(), error=f"Scheduling failed: {exc}")
            logger.error("Generation job {} could not be scheduled: {}", job.id, exc)
            raise GenerationError(f"Job {job.id} could not be scheduled: {exc}") from exc
        future.add_done_callback(lambda _: self._forget(job.id))
        logger.info(
            "Generation job {} started for '{}' ({} chapters, {} target pages)",
            job.id,
            structure.title,
            len(structure.chapters),
            structure.target_pages,
        )
        return job.id

    def get_status(self, job_id: str) -> Job:
        job = self._store.get(job_id)
        if job is None:
            raise NotFoundError(f"Job '{job_id}' not found")
        return job

    def cancel(self, job_id: str) -> bool:
        """Ask a job to stop at the next chapter boundary.

        Returns ``False`` when the job has already finished.
        """
        job = self.get_status(job_id)
        if job.state.is_terminal:
            return False
        with self._lock:
            event = self._cancel_events.get(job_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for job {}", job_id)
        return True

    def wait(self, job_id: str, timeout: float | None = None) -> Job:
        """Block until the job's task returns, then return its final snapshot."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            return self.get_status(job_id)
        future.result(timeout=timeout)
        return self.get_status(job_id)

    def list_jobs(self) -> list[Job]:
        jobs = (self._store.get(job_id) for job_id in self._store.list_ids())
        return [job for job in jobs if job is not None]

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def status_payload(job: Job) -> dict[str, Any]:
        return {
            "job_id": job.id,
            "state": job.state.value,
            "progress": int(job.progress * 100),
            "page_count": job.page_count,
            "error": job.error,
        }

    # ------------------------------------------------------------------
    def _run(self, job: Job, structure: Structure, context: GenerationContext, cancel_event: Event) -> None:
        bound_logger = logger.bind(job_id=job.id)
        timer_start = perf_counter()
        next_page = 1
        try:
            for chapter in structure.chapters:
                if cancel_event.is_set():
                    self._finish(job, JobState.CANCELLED, timer_start)
                    bound_logger.info("Job cancelled after {} chapters", job.chapters_completed)
                    return

                text = self._write(chapter, structure, context)
                pages, next_page = self._paginator.paginate(text, chapter.number, next_page)
                job.pages.extend(pages)
                job.chapters_completed += 1
                job.touch()
                self._store.put(job)
                self.metrics.record_chapter(len(pages))
                bound_logger.info(
                    "Chapter {} '{}' done: {} pages ({}/{})",
                    chapter.number,
                    chapter.title,
                    len(pages),
                    job.chapters_completed,
                    job.chapters_total,
                )
        except Exception as exc:  # noqa: BLE001
            self._finish(job, JobState.FAILED, timer_start, error=str(exc))
            bound_logger.error("Job failed after {} chapters: {}", job.chapters_completed, exc)
            return

        self._finish(job, JobState.COMPLETE, timer_start)
        bound_logger.info("Job complete: {} pages", job.page_count)

    def _write(self, chapter: Chapter, structure: Structure, context: GenerationContext) -> str:
        try:
            text = self._writer.write_chapter(chapter, structure, context=context)
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(f"Chapter {chapter.number} generation failed: {exc}") from exc
        if not isinstance(text, str) or not text.strip():
            raise GenerationError(f"Chapter {chapter.number} generation returned no text")
        return text

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._futures.pop(job_id, None)

    def _finish(self, job: Job, state: JobState, timer_start: float, *, error: str | None = None) -> None:
        job.transition(state, error=error)
        self._store.put(job)
        with self._lock:
            self._cancel_events.pop(job.id, None)
        self.metrics.record_finish(state.value, perf_counter() - timer_start)


__all__ = ["ChapterWriter", "DEFAULT_MAX_PAGES", "GenerationJobManager"]
