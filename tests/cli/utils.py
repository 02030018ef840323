"""Shared helpers for CLI tests."""

from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path

from loguru import logger


@contextmanager
def logger_to_stderr(level: str = "INFO"):
    """Temporarily route Loguru output to stderr for assertion."""

    handler_id = logger.add(sys.stderr, level=level)
    try:
        yield
    finally:
        logger.remove(handler_id)


def write_config(tmp_path: Path, *, max_pages: int = 96, extra: str = "") -> Path:
    """Write a stub-backed configuration file and return its path."""

    config_file = tmp_path / "config.toml"
    config_file.write_text(
        f"""
logging_level = "INFO"

[generation]
model = "stub"
max_pages = {max_pages}
words_per_page = 10
tokens_per_page = 20
max_workers = 1

[[llms]]
alias = "stub"
name = "StubModel"
base_url = "stub://local"
api_key = "dummy"
{extra}
""".lstrip(),
        encoding="utf-8",
    )
    return config_file


def write_structure(tmp_path: Path, *, pages_per_chapter: int = 1, chapters: int = 2) -> Path:
    structure_file = tmp_path / "structure.json"
    chapter_items = ",".join(
        f'{{"number": {n}, "title": "Chapter {n}", "summary": "Part {n}.", "target_pages": {pages_per_chapter}}}'
        for n in range(1, chapters + 1)
    )
    structure_file.write_text(
        f'{{"title": "The Lighthouse", "synopsis": "A keeper waits.", "chapters": [{chapter_items}]}}',
        encoding="utf-8",
    )
    return structure_file
