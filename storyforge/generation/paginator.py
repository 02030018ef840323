"""Split generated chapter prose into fixed-size pages."""

from __future__ import annotations

from storyforge.errors import ValidationError

from .models import Page

DEFAULT_WORDS_PER_PAGE = 250


class Paginator:
    """Group whitespace-delimited words into pages of ``words_per_page`` words.

    The last page of a chapter may be shorter; it is never padded and never
    merged into the next chapter.
    """

    def __init__(self, words_per_page: int = DEFAULT_WORDS_PER_PAGE) -> None:
        if isinstance(words_per_page, bool) or not isinstance(words_per_page, int) or words_per_page < 1:
            raise ValidationError(f"words_per_page must be a positive integer, got {words_per_page!r}")
        self.words_per_page = words_per_page

    def paginate(self, chapter_text: str, chapter_number: int, starting_page_number: int) -> tuple[list[Page], int]:
        """Return the chapter's pages and the number the next page should use."""
        if (
            isinstance(starting_page_number, bool)
            or not isinstance(starting_page_number, int)
            or starting_page_number < 0
        ):
            raise ValidationError(
                f"starting_page_number must be a non-negative integer, got {starting_page_number!r}"
            )

        words = chapter_text.split()
        pages: list[Page] = []
        page_number = starting_page_number
        for offset in range(0, len(words), self.words_per_page):
            chunk = words[offset:offset + self.words_per_page]
            pages.append(Page(number=page_number, chapter=chapter_number, text=" ".join(chunk)))
            page_number += 1
        return pages, page_number


def paginate(
    chapter_text: str,
    chapter_number: int,
    starting_page_number: int,
    *,
    words_per_page: int = DEFAULT_WORDS_PER_PAGE,
) -> tuple[list[Page], int]:
    return Paginator(words_per_page).paginate(chapter_text, chapter_number, starting_page_number)


__all__ = ["DEFAULT_WORDS_PER_PAGE", "Paginator", "paginate"]
