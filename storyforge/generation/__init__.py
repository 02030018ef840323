"""Chapter generation, pagination and job tracking."""

from __future__ import annotations

from .content import StoryGenerator
from .jobs import ChapterWriter, GenerationJobManager
from .metrics import GenerationMetricsRegistry
from .models import GenerationContext, Job, JobState, Page
from .paginator import Paginator, paginate
from .store import InMemoryJobStore, JobStore

__all__ = [
    "ChapterWriter",
    "GenerationContext",
    "GenerationJobManager",
    "GenerationMetricsRegistry",
    "InMemoryJobStore",
    "Job",
    "JobState",
    "JobStore",
    "Page",
    "Paginator",
    "StoryGenerator",
    "paginate",
]
