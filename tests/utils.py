"""Builders shared across test packages."""

from __future__ import annotations

from storyforge.models import Candidate, Chapter, Structure


def make_candidate(
    candidate_id: str,
    *,
    keywords: tuple[str, ...] = (),
    demographics: tuple[str, ...] = (),
    attributes: tuple[str, ...] = (),
    emotional: dict[str, float] | None = None,
) -> Candidate:
    return Candidate(
        id=candidate_id,
        title=f"Title {candidate_id}",
        keywords=keywords,
        demographics=demographics,
        attribute_tags=attributes,
        emotional=emotional,
    )


def make_structure(*pages: int, title: str = "The Lighthouse") -> Structure:
    chapters = tuple(
        Chapter(number=index, title=f"Chapter {index}", summary=f"Part {index}.", target_pages=count)
        for index, count in enumerate(pages, start=1)
    )
    return Structure(title=title, synopsis="A keeper waits for a ship.", chapters=chapters)
