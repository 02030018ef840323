"""Thread-safe counters for generation jobs, exported in Prometheus text format."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any


@dataclass(slots=True)
class GenerationMetrics:
    """Aggregate execution statistics across all jobs of a manager."""

    started: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    pages_generated: int = 0
    chapters_generated: int = 0
    last_duration_seconds: float | None = None

    @property
    def active(self) -> int:
        return self.started - self.completed - self.failed - self.cancelled


class GenerationMetricsRegistry:
    def __init__(self) -> None:
        self._lock = Lock()
        self._metrics = GenerationMetrics()

    def record_start(self) -> None:
        with self._lock:
            self._metrics.started += 1

    def record_chapter(self, pages: int) -> None:
        with self._lock:
            self._metrics.chapters_generated += 1
            self._metrics.pages_generated += pages

    def record_finish(self, state: str, duration_seconds: float) -> None:
        with self._lock:
            if state == "complete":
                self._metrics.completed += 1
            elif state == "failed":
                self._metrics.failed += 1
            elif state == "cancelled":
                self._metrics.cancelled += 1
            else:
                raise ValueError(f"Not a terminal job state: {state}")
            self._metrics.last_duration_seconds = duration_seconds

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            data = asdict(self._metrics)
            data["active"] = self._metrics.active
            return data

    def export_prometheus(self) -> str:
        data = self.snapshot()
        series: list[tuple[str, str, str, Any]] = [
            ("generation_jobs_started_total", "counter", "Number of generation jobs started.", data["started"]),
            ("generation_jobs_completed_total", "counter", "Number of jobs that completed every chapter.", data["completed"]),
            ("generation_jobs_failed_total", "counter", "Number of jobs that failed on a chapter.", data["failed"]),
            ("generation_jobs_cancelled_total", "counter", "Number of jobs cancelled between chapters.", data["cancelled"]),
            ("generation_jobs_active", "gauge", "Jobs currently pending or generating.", data["active"]),
            ("generation_chapters_total", "counter", "Chapters generated across all jobs.", data["chapters_generated"]),
            ("generation_pages_total", "counter", "Pages produced across all jobs.", data["pages_generated"]),
            (
                "generation_job_last_duration_seconds",
                "gauge",
                "Duration of the most recently finished job in seconds.",
                data["last_duration_seconds"],
            ),
        ]

        lines: list[str] = []
        for name, kind, description, value in series:
            if value is None:
                continue
            lines.append(f"# HELP {name} {description}")
            lines.append(f"# TYPE {name} {kind}")
            lines.append(f"{name} {value}")
        return "\n".join(lines) + "\n"


__all__ = ["GenerationMetrics", "GenerationMetricsRegistry"]
