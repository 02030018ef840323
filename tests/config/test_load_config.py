from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from storyforge.config import AppConfig, BaseConfig, load_config


class ExampleConfig(BaseConfig):
    output_dir: Path
    feature_enabled: bool


def test_load_config_success(tmp_path: Path) -> None:
    sample = tmp_path / "config.toml"
    sample.write_text(
        """
        output_dir = "./books"
        feature_enabled = true
        """.strip(),
        encoding="utf-8",
    )

    cfg = load_config(ExampleConfig, sample)

    assert cfg.output_dir == Path("./books")
    assert cfg.feature_enabled is True


def test_load_config_missing_file(tmp_path: Path) -> None:
    missing = tmp_path / "missing.toml"
    with pytest.raises(FileNotFoundError):
        load_config(ExampleConfig, missing)


def test_load_config_invalid_toml(tmp_path: Path) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("output_dir = [unclosed", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid TOML"):
        load_config(ExampleConfig, broken)


def test_extra_fields_are_rejected(tmp_path: Path) -> None:
    sample = tmp_path / "config.toml"
    sample.write_text('output_dir = "x"\nfeature_enabled = false\nsurprise = 1\n', encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(ExampleConfig, sample)


def test_app_config_example_file(example_config_path: Path) -> None:
    cfg = load_config(AppConfig, example_config_path)

    assert cfg.logging_level == "INFO"
    assert cfg.workflow.min_approvals == 2
    assert cfg.workflow.active_pitches == 5
    assert cfg.workflow.preference.approve_keyword == 3
    assert cfg.workflow.preference.approve_demographic == 2
    assert cfg.workflow.preference.deny_keyword == 1

    assert cfg.generation is not None
    assert cfg.generation.max_pages == 96
    assert cfg.generation.words_per_page == 250

    assert cfg.web is not None and cfg.web.auth is not None
    assert cfg.web.auth.enabled is False

    stub = cfg.resolve_llm(cfg.generation.model)
    assert stub.is_stub
    assert {llm.alias for llm in cfg.llms} == {"stub", "claude-sonnet"}


def test_app_config_defaults() -> None:
    cfg = AppConfig()

    assert cfg.generation is None
    assert cfg.web is None
    assert cfg.llms == []
    assert cfg.workflow.min_approvals == 2
    assert cfg.workflow.cloud_terms == 12
