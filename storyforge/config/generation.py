"""Book generation configuration models."""

from __future__ import annotations

from pydantic import Field

from storyforge.config.base import BaseConfig


class GenerationConfig(BaseConfig):
    """Settings for structure validation, pagination and background jobs."""

    model: str = Field(..., description="LLM alias used for pitches, structures and chapters")
    max_pages: int = Field(96, ge=1, description="Hard page ceiling for a book structure")
    words_per_page: int = Field(250, ge=1, description="Words per generated page")
    tokens_per_page: int = Field(500, ge=1, description="Completion token budget per target page")
    max_workers: int = Field(4, ge=1, description="Concurrent generation jobs")
    style: str | None = Field(None, description="Default prose style when no cover style is chosen")


__all__ = ["GenerationConfig"]
