"""Command line interface for the storyforge toolkit."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer
import uvicorn
from loguru import logger
from pydantic import ValidationError as SchemaError

from .config import AppConfig, load_config, mask_secret
from .config.inspector import check_config, explain_config
from .errors import ValidationError
from .generation import GenerationContext, GenerationJobManager, JobState, StoryGenerator
from .models import Structure
from .web import create_app
from .workflow import SessionRegistry, WorkflowController


@dataclass(slots=True)
class CLIState:
    """Holds shared state between Typer commands."""

    config_path: Path
    _config: AppConfig | None = None

    def ensure_config(self) -> AppConfig:
        if self._config is None:
            logger.info("Loading configuration from {}", self.config_path)
            self._config = load_config(AppConfig, self.config_path)
        return self._config


app = typer.Typer(help="Storyforge book generation helpers")
config_app = typer.Typer(help="Validate and document configuration files")
app.add_typer(config_app, name="config")


def _default_config_path() -> Path:
    repo_root = Path(__file__).resolve().parents[1]
    return repo_root / "config" / "example.toml"


def _normalize_format(value: str) -> str:
    return value.lower()


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):  # pragma: no cover - defensive guard
        raise RuntimeError("CLI context is not initialised")
    return state


def _exit(code: int) -> None:
    raise typer.Exit(code)


def _build_generator(config: AppConfig) -> StoryGenerator:
    if config.generation is None:
        raise ValueError("generation config is required for book generation")
    gen_cfg = config.generation
    return StoryGenerator(
        config.resolve_llm(gen_cfg.model),
        tokens_per_page=gen_cfg.tokens_per_page,
        words_per_page=gen_cfg.words_per_page,
    )


def _build_job_manager(config: AppConfig, generator: StoryGenerator | None = None) -> GenerationJobManager:
    return GenerationJobManager.from_config(config, generator or _build_generator(config))


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config: Path = typer.Option(
        _default_config_path(),
        help="Path to the TOML configuration file",
    ),
) -> None:
    """Initialise CLI state."""

    ctx.obj = CLIState(config_path=config.resolve())
    if ctx.invoked_subcommand is None:
        logger.warning("No command provided. Try 'status' or 'generate --structure FILE'.")
        _exit(0)


@app.command(help="Show configuration and subsystem status")
def status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = state.ensure_config()
    _report_system_status(config)


@app.command(help="Generate a paginated book from a structure JSON file")
def generate(
    ctx: typer.Context,
    structure_path: Path = typer.Option(..., "--structure", help="Structure JSON (title, synopsis, chapters)"),
    output: Path | None = typer.Option(None, "--output", help="Where to write the paginated book JSON"),
    style: str | None = typer.Option(None, help="Prose style forwarded to chapter requests"),
    timeout: float | None = typer.Option(None, min=0.0, help="Seconds to wait for the job before giving up"),
) -> None:
    state = _get_state(ctx)
    config = state.ensure_config()

    try:
        structure = Structure.model_validate_json(structure_path.read_text(encoding="utf-8"))
    except (OSError, SchemaError) as exc:
        logger.error("Cannot read structure {}: {}", structure_path, exc)
        _exit(1)
        return

    try:
        manager = _build_job_manager(config)
    except (ValueError, EnvironmentError) as exc:
        logger.error("Cannot initialise generation: {}", exc)
        _exit(1)
        return

    default_style = config.generation.style if config.generation else None
    try:
        job_id = manager.start_job(structure, context=GenerationContext(style=style or default_style))
    except ValidationError as exc:
        logger.error("Structure rejected: {}", exc)
        manager.shutdown()
        _exit(1)
        return

    try:
        job = manager.wait(job_id, timeout=timeout)
    except TimeoutError:
        manager.cancel(job_id)
        job = manager.get_status(job_id)
        logger.error(
            "Job {} did not finish within {}s; cancellation requested after {} chapters",
            job_id,
            timeout,
            job.chapters_completed,
        )
    finally:
        manager.shutdown(wait=False)

    payload = manager.status_payload(job)
    logger.info("Job {} finished: state={} pages={}", job.id, payload["state"], payload["page_count"])

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        book: dict[str, Any] = {
            **payload,
            "title": structure.title,
            "synopsis": structure.synopsis,
            "pages": [{"number": page.number, "chapter": page.chapter, "text": page.text} for page in job.pages],
        }
        output.write_text(json.dumps(book, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("Paginated book written to {}", output)

    if job.state is not JobState.COMPLETE:
        logger.error("Generation did not complete: {}", job.error or job.state.value)
        _exit(1)


@config_app.command(help="Validate the configuration file")
def check(
    ctx: typer.Context,
    format: str = typer.Option(  # noqa: A002 - match CLI option name
        "text",
        "--format",
        case_sensitive=False,
        help="Output format for validation results",
        callback=_normalize_format,
    ),
) -> None:
    state = _get_state(ctx)
    result, exit_code, _ = check_config(state.config_path)

    if format == "json":
        print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
        _exit(exit_code)

    if result["status"] == "ok":
        logger.info("Configuration OK: {}", result["config_path"])
        for warning in result["warnings"]:
            logger.warning(warning)
    else:
        error: dict[str, Any] = result["error"]
        logger.error(
            "Configuration error ({}) for {}: {}",
            error["type"],
            result["config_path"],
            error["message"],
        )
        for detail in error.get("details", []):
            logger.error("  - {}: {} ({})", detail["loc"] or "<root>", detail["message"], detail["type"])

    _exit(exit_code)


@config_app.command(help="Describe available configuration fields")
def explain(
    format: str = typer.Option(  # noqa: A002 - match CLI option name
        "text",
        "--format",
        case_sensitive=False,
        help="Output format for configuration schema",
        callback=_normalize_format,
    ),
) -> None:
    fields = explain_config()

    if format == "json":
        print(json.dumps({"fields": fields}, indent=2, ensure_ascii=False, default=str))
        return

    logger.info("Configuration schema ({} fields):", len(fields))
    for field in fields:
        default_value = field["default"]
        if isinstance(default_value, (dict, list)):
            default_repr = json.dumps(default_value, ensure_ascii=False, default=str)
        else:
            default_repr = str(default_value)
        logger.info(
            "  - {name}: type={type}, required={required}, default={default}, description={description}",
            name=field["name"],
            type=field["type"],
            required="yes" if field["required"] else "no",
            default=default_repr,
            description=field["description"] or "(no description)",
        )


@app.command(help="Run the job API server")
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", help="Host to bind the API server to"),
    port: int = typer.Option(8000, help="Port to bind the API server to"),
    dry_run: bool = typer.Option(False, help="Build the application and report status without serving"),
) -> None:
    state = _get_state(ctx)
    config = state.ensure_config()

    try:
        generator = _build_generator(config)
        manager = _build_job_manager(config, generator)
    except (ValueError, EnvironmentError) as exc:
        logger.error("Cannot initialise generation: {}", exc)
        _exit(1)
        return

    sessions = SessionRegistry(lambda: WorkflowController.from_config(config, generator, manager))
    app_instance = create_app(manager, config, sessions=sessions)

    if dry_run:
        logger.info("[Dry Run] API with {} routes built; server will not be started.", len(app_instance.routes))
        manager.shutdown()
        return

    @app_instance.on_event("shutdown")
    async def shutdown_event() -> None:
        logger.info("Application shutdown, waiting for running jobs...")
        manager.shutdown()

    uvicorn.run(app_instance, host=host, port=port, log_level=config.logging_level.lower())


def _report_system_status(config: AppConfig) -> None:
    logger.info("=== General Configuration ===")
    logger.info("Logging level: {}", config.logging_level)

    logger.info("\n=== Workflow ===")
    workflow = config.workflow
    logger.info("Minimum approvals: {}", workflow.min_approvals)
    logger.info("Active pitches: {}", workflow.active_pitches)
    logger.info(
        "Weights: approve keyword +{}, approve demographic +{}, deny keyword -{}",
        workflow.preference.approve_keyword,
        workflow.preference.approve_demographic,
        workflow.preference.deny_keyword,
    )

    logger.info("\n=== Generation ===")
    if config.generation:
        gen = config.generation
        logger.info("Model alias: {}", gen.model)
        logger.info("Page ceiling: {}, words per page: {}", gen.max_pages, gen.words_per_page)
        logger.info("Max concurrent jobs: {}", gen.max_workers)
    else:
        logger.info("Not configured")

    logger.info("\n=== LLM Configurations ===")
    if config.llms:
        logger.info("Available LLMs: {}", len(config.llms))
        for llm in config.llms:
            kind = "stub" if llm.is_stub else "litellm"
            logger.info("  - {}: {} ({}, key={})", llm.alias, llm.name, kind, mask_secret(llm.api_key))
    else:
        logger.info("No LLMs configured")


def main(argv: list[str] | None = None) -> int:
    """Entry point compatible with setuptools console scripts."""

    try:
        result = app(args=argv, standalone_mode=False)
    except typer.Exit as exc:  # pragma: no cover - Typer translates exit codes
        return exc.exit_code
    if isinstance(result, int):
        return result
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
