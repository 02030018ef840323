"""Base configuration model and TOML loader."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict

ConfigT = TypeVar("ConfigT", bound="BaseConfig")


class BaseConfig(BaseModel):
    """Strict pydantic model shared by every configuration section."""

    model_config = ConfigDict(extra="forbid", validate_default=True)


def load_config(config_cls: type[ConfigT], path: Path | str) -> ConfigT:
    """Load ``path`` as TOML and validate it against ``config_cls``.

    Raises :class:`FileNotFoundError` when the file is missing, :class:`ValueError`
    when it is not valid TOML and :class:`pydantic.ValidationError` when the
    content does not match the model.
    """

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    raw = config_path.read_text(encoding="utf-8")
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {config_path}: {exc}") from exc
    return config_cls.model_validate(data)


__all__ = ["BaseConfig", "load_config"]
