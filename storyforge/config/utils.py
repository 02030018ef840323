"""Helpers for secrets referenced from configuration files."""

from __future__ import annotations

import os

_ENV_PREFIX = "env:"


def resolve_env_reference(value: str | None, *, required: bool = True) -> str | None:
    """Expand ``"env:VAR_NAME"`` into the value of ``VAR_NAME``.

    Plain strings and ``None`` pass through. A missing or empty variable raises
    :class:`EnvironmentError` unless ``required`` is false.
    """

    if value is None or not value.startswith(_ENV_PREFIX):
        return value

    var_name = value[len(_ENV_PREFIX):].strip()
    resolved = os.getenv(var_name, "")
    if resolved:
        return resolved
    if required:
        raise EnvironmentError(f"Environment variable '{var_name}' is not set or empty")
    return None


def mask_secret(value: str | None) -> str:
    """Return a log-safe rendering of a secret or ``env:`` reference."""

    if not value:
        return "<unset>"
    if value.startswith(_ENV_PREFIX):
        return value
    return "***"


__all__ = ["mask_secret", "resolve_env_reference"]
