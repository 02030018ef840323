"""Pytest helpers for path configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from storyforge.config import LLMConfig  # noqa: E402


@pytest.fixture()
def stub_llm_config() -> LLMConfig:
    return LLMConfig(alias="stub", name="StubModel", base_url="stub://local", api_key="dummy")


@pytest.fixture()
def example_config_path() -> Path:
    return _REPO_ROOT / "config" / "example.toml"
