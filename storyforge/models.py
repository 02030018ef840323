"""Typed schemas for everything exchanged with the content generator.

Generator output is parsed into these models at the boundary so the rest of
the package never handles untyped JSON. Field aliases accept the camelCase
keys language models tend to emit.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _clean_terms(value: Any) -> Any:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple)):
        return tuple(str(item).strip() for item in value if str(item).strip())
    return value


class _Schema(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class CoverChoice(_Schema):
    """Cover picked in the first workflow step."""

    style: str = Field(..., min_length=1)
    mood: str = Field(..., min_length=1)


class Candidate(_Schema):
    """A proposal the user votes on: a story pitch or a genome track."""

    id: str = Field(..., min_length=1)
    title: str = ""
    synopsis: str = ""
    keywords: tuple[str, ...] = ()
    demographics: tuple[str, ...] = ()
    core: tuple[str, ...] = ()
    attribute_tags: tuple[str, ...] = Field((), validation_alias=AliasChoices("attribute_tags", "attributes"))
    emotional: dict[str, float] | None = None
    match: int | None = Field(None, ge=0, le=100)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("keywords", "demographics", "core", "attribute_tags", mode="before")
    @classmethod
    def _normalise_terms(cls, value: Any) -> Any:
        return _clean_terms(value)

    @field_validator("emotional")
    @classmethod
    def _check_emotional_range(cls, value: dict[str, float] | None) -> dict[str, float] | None:
        return _validate_vector(value)


class TrackSuggestion(Candidate):
    """A song from the genome, scored against the profile like any candidate."""

    artist: str = ""
    reason: str = ""


class Profile(_Schema):
    """Target attribute vector and tag lists used to score candidates."""

    primary: tuple[str, ...] = ()
    secondary: tuple[str, ...] = ()
    emotional: dict[str, float] | None = None
    vibe: str = Field("", validation_alias=AliasChoices("vibe", "vibe_profile", "vibeProfile"))
    genre_hints: tuple[str, ...] = Field((), validation_alias=AliasChoices("genre_hints", "genreHints"))
    tracks: tuple[TrackSuggestion, ...] = ()

    @field_validator("primary", "secondary", "genre_hints", mode="before")
    @classmethod
    def _normalise_terms(cls, value: Any) -> Any:
        return _clean_terms(value)

    @field_validator("emotional")
    @classmethod
    def _check_emotional_range(cls, value: dict[str, float] | None) -> dict[str, float] | None:
        return _validate_vector(value)

    @property
    def tag_union(self) -> frozenset[str]:
        return frozenset(self.primary) | frozenset(self.secondary)


class Chapter(_Schema):
    number: int = Field(..., ge=1)
    title: str = Field(..., min_length=1)
    summary: str = ""
    target_pages: int = Field(
        ...,
        ge=1,
        validation_alias=AliasChoices("target_pages", "estimated_pages", "estimatedPages"),
    )


class Structure(_Schema):
    """Approved chapter outline that feeds full-content generation."""

    title: str = Field(..., min_length=1)
    synopsis: str = ""
    chapters: tuple[Chapter, ...] = ()
    total_pages: int | None = Field(None, ge=0, validation_alias=AliasChoices("total_pages", "totalPages"))

    @property
    def target_pages(self) -> int:
        return sum(chapter.target_pages for chapter in self.chapters)


def _validate_vector(value: dict[str, float] | None) -> dict[str, float] | None:
    if value is None:
        return None
    for dimension, amount in value.items():
        if not 0.0 <= amount <= 1.0:
            raise ValueError(f"Emotional dimension '{dimension}' must be within [0, 1], got {amount}")
    return value


__all__ = [
    "Candidate",
    "Chapter",
    "CoverChoice",
    "Profile",
    "Structure",
    "TrackSuggestion",
]
