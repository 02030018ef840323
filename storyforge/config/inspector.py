"""Validation and self-documentation helpers for configuration files."""

from __future__ import annotations

from pathlib import Path
from types import UnionType
from typing import Any, Iterable, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError
from pydantic.fields import FieldInfo

from .app import AppConfig
from .base import load_config


class ConfigInspectionError(RuntimeError):
    """Raised when configuration inspection fails unexpectedly."""


# exception type -> (error type label, exit code)
_LOAD_FAILURES: tuple[tuple[type[Exception], str, int], ...] = (
    (FileNotFoundError, "missing_file", 2),
    (PermissionError, "permission_error", 2),
    (ValueError, "invalid_format", 1),
)


def check_config(path: Path, *, config_cls: type[AppConfig] = AppConfig) -> tuple[dict[str, Any], int, AppConfig | None]:
    """Validate the configuration file and collect warnings.

    Returns ``(result_dict, exit_code, config_or_None)``.
    """

    try:
        config = load_config(config_cls, path)
    except ValidationError as exc:
        details = [
            {"loc": ".".join(str(part) for part in err["loc"]), "message": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        return _error_result(path, "validation_error", "Configuration validation failed", details), 3, None
    except Exception as exc:
        for exc_type, label, code in _LOAD_FAILURES:
            if isinstance(exc, exc_type):
                return _error_result(path, label, str(exc)), code, None
        raise ConfigInspectionError("Unexpected configuration inspection error") from exc

    result = {
        "status": "ok",
        "config_path": str(path),
        "warnings": _collect_warnings(config),
    }
    return result, 0, config


def explain_config(*, config_cls: type[BaseModel] = AppConfig) -> list[dict[str, Any]]:
    """Flatten the configuration schema into documented field entries."""

    documentation: list[dict[str, Any]] = []
    visited: set[type[BaseModel]] = set()

    def _walk(model_cls: type[BaseModel], prefix: str) -> None:
        if model_cls in visited:
            return
        visited.add(model_cls)
        for field_name, field in model_cls.model_fields.items():
            name = f"{prefix}{field_name}"
            documentation.append(
                {
                    "name": name,
                    "type": _format_annotation(field.annotation),
                    "required": field.is_required(),
                    "default": _format_default(field),
                    "description": field.description or "",
                }
            )
            for nested_cls, suffix in _nested_models(field.annotation):
                _walk(nested_cls, f"{name}{suffix}")

    _walk(config_cls, "")
    return documentation


def _error_result(path: Path, kind: str, message: str, details: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"type": kind, "message": message}
    if details is not None:
        error["details"] = details
    return {"status": "error", "config_path": str(path), "error": error}


def _collect_warnings(config: AppConfig) -> list[str]:
    warnings: list[str] = []

    if not config.llms:
        warnings.append("No LLM configurations defined; pitches and chapters cannot be generated")
    if config.generation is None:
        warnings.append("No [generation] block configured; book generation is unavailable")
    else:
        aliases = {llm.alias for llm in config.llms}
        if config.llms and config.generation.model not in aliases:
            warnings.append(f"generation.model '{config.generation.model}' does not match any LLM alias")
    if config.workflow.min_approvals > config.workflow.active_pitches:
        warnings.append("workflow.min_approvals exceeds workflow.active_pitches; voting needs several rounds")
    if config.web and config.web.auth is None:
        warnings.append("Web API is configured without authentication")

    return warnings


def _format_annotation(annotation: Any) -> str:
    origin = get_origin(annotation)
    if origin is None:
        if isinstance(annotation, type):
            return annotation.__name__
        return repr(annotation).replace("typing.", "")

    args = get_args(annotation)
    if origin in {Union, UnionType}:
        non_none = [arg for arg in args if arg is not type(None)]  # noqa: E721
        if len(non_none) == 1 and len(args) == 2:
            return f"Optional[{_format_annotation(non_none[0])}]"
        return f"Union[{', '.join(_format_annotation(arg) for arg in args)}]"

    origin_name = getattr(origin, "__name__", repr(origin).replace("typing.", ""))
    if args:
        return f"{origin_name}[{', '.join(_format_annotation(arg) for arg in args)}]"
    return origin_name


def _format_default(field: FieldInfo) -> Any:
    if field.is_required():
        return None
    if field.default_factory is not None:
        return _plain(field.default_factory())
    return _plain(field.default)


def _plain(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def _nested_models(annotation: Any) -> Iterable[tuple[type[BaseModel], str]]:
    origin = get_origin(annotation)
    if origin is None:
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            yield annotation, "."
        return

    args = get_args(annotation)
    if origin in {Union, UnionType}:
        for arg in args:
            yield from _nested_models(arg)
    elif origin in {list, tuple, set} and args:
        for nested, _ in _nested_models(args[0]):
            yield nested, "[]."


__all__ = ["ConfigInspectionError", "check_config", "explain_config"]
