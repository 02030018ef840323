"""FastAPI application factory and routing definitions."""

from __future__ import annotations

import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.responses import PlainTextResponse
from loguru import logger
from pydantic import BaseModel

from storyforge.config.app import AppConfig
from storyforge.config.web import WebAuthConfig
from storyforge.errors import GenerationError, NotFoundError, ValidationError
from storyforge.generation.jobs import GenerationJobManager
from storyforge.generation.models import GenerationContext
from storyforge.models import CoverChoice, Structure
from storyforge.workflow import SessionRegistry, WorkflowController


class IntentRequest(BaseModel):
    intent: str


class VoteRequest(BaseModel):
    candidate_id: str
    outcome: str


def create_app(
    job_manager: GenerationJobManager,
    config: AppConfig | None = None,
    *,
    sessions: SessionRegistry | None = None,
) -> FastAPI:
    """Creates the job API around an existing :class:`GenerationJobManager`.

    Workflow session routes are mounted only when ``sessions`` is given.
    """
    web_config = config.web if config and config.web else None
    auth_dependency = _build_auth_dependency(web_config.auth if web_config else None)
    default_style = config.generation.style if config and config.generation else None

    app = FastAPI(
        title=web_config.title if web_config else "Storyforge API",
        description="Run story sessions, start book generation jobs and poll their progress.",
        version="0.1.0",
    )

    def _job_or_404(job_id: str):
        try:
            return job_manager.get_status(job_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.get("/health", summary="Health Check", tags=["Monitoring"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/jobs", status_code=status.HTTP_202_ACCEPTED, summary="Start Generation", tags=["Jobs"])
    async def start_job(structure: Structure, _: None = Depends(auth_dependency)) -> dict[str, str]:
        """Validate the structure and start generating it in the background."""
        with _http_errors():
            try:
                job_id = job_manager.start_job(structure, context=GenerationContext(style=default_style))
            except GenerationError as exc:
                raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return {"job_id": job_id}

    @app.get("/jobs", summary="List Jobs", tags=["Jobs"])
    async def list_jobs(_: None = Depends(auth_dependency)) -> list[dict[str, Any]]:
        return [job_manager.status_payload(job) for job in job_manager.list_jobs()]

    @app.get("/jobs/{job_id}", summary="Job Status", tags=["Jobs"])
    async def job_status(job_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        return job_manager.status_payload(_job_or_404(job_id))

    @app.get("/jobs/{job_id}/pages", summary="Generated Pages", tags=["Jobs"])
    async def job_pages(job_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        job = _job_or_404(job_id)
        return {
            "job_id": job.id,
            "title": job.title,
            "state": job.state.value,
            "pages": [{"number": page.number, "chapter": page.chapter, "text": page.text} for page in job.pages],
        }

    @app.post("/jobs/{job_id}/cancel", summary="Cancel Job", tags=["Jobs"])
    async def cancel_job(job_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        try:
            cancelled = job_manager.cancel(job_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"job_id": job_id, "cancelled": cancelled}

    @app.get("/metrics", response_class=PlainTextResponse, summary="Prometheus Metrics", tags=["Monitoring"])
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(job_manager.metrics.export_prometheus(), media_type="text/plain; version=0.0.4")

    if sessions is not None:
        _mount_session_routes(app, sessions, job_manager, auth_dependency)

    return app


def _mount_session_routes(
    app: FastAPI,
    sessions: SessionRegistry,
    job_manager: GenerationJobManager,
    auth_dependency: Callable[..., Any],
) -> None:
    # Controller calls block on the language model, so these handlers are
    # plain functions and run in the threadpool.

    @contextmanager
    def _session(session_id: str) -> Iterator[WorkflowController]:
        with _http_errors(), sessions.use(session_id) as controller:
            yield controller

    @app.post("/sessions", status_code=status.HTTP_201_CREATED, summary="Create Session", tags=["Sessions"])
    def create_session(_: None = Depends(auth_dependency)) -> dict[str, Any]:
        session_id = sessions.create()
        with _session(session_id) as controller:
            return {"session_id": session_id, **_session_payload(controller)}

    @app.get("/sessions/{session_id}", summary="Session State", tags=["Sessions"])
    def get_session(session_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        with _session(session_id) as controller:
            return {"session_id": session_id, **_session_payload(controller)}

    @app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Sessions"])
    def delete_session(session_id: str, _: None = Depends(auth_dependency)) -> None:
        with _http_errors():
            sessions.delete(session_id)

    @app.post("/sessions/{session_id}/cover", summary="Select Cover", tags=["Sessions"])
    def select_cover(session_id: str, cover: CoverChoice, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        with _session(session_id) as controller:
            controller.select_cover(cover)
            return _session_payload(controller)

    @app.post("/sessions/{session_id}/intent", summary="Submit Intent", tags=["Sessions"])
    def submit_intent(
        session_id: str, request: IntentRequest, _: None = Depends(auth_dependency)
    ) -> dict[str, Any]:
        with _session(session_id) as controller:
            profile = controller.submit_intent(request.intent)
            return {"step": controller.step.value, "profile": profile.model_dump()}

    @app.post("/sessions/{session_id}/pitches", summary="Start Pitching", tags=["Sessions"])
    def start_pitching(session_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        with _session(session_id) as controller:
            controller.start_pitching()
            return _session_payload(controller)

    @app.post("/sessions/{session_id}/pitches/refill", summary="Refill Pitches", tags=["Sessions"])
    def refill_pitches(session_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        with _session(session_id) as controller:
            controller.refill_pitches()
            return _session_payload(controller)

    @app.post("/sessions/{session_id}/votes", summary="Vote On Pitch", tags=["Sessions"])
    def vote(session_id: str, request: VoteRequest, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        with _session(session_id) as controller:
            controller.vote(request.candidate_id, request.outcome)
            return _session_payload(controller)

    @app.post("/sessions/{session_id}/structure", summary="Build Structure", tags=["Sessions"])
    def advance_to_structure(session_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        with _session(session_id) as controller:
            controller.advance_to_structure()
            return _session_payload(controller)

    @app.post(
        "/sessions/{session_id}/generate",
        status_code=status.HTTP_202_ACCEPTED,
        summary="Start Session Generation",
        tags=["Sessions"],
    )
    def start_generation(session_id: str, _: None = Depends(auth_dependency)) -> dict[str, str]:
        with _session(session_id) as controller:
            return {"job_id": controller.start_generation()}

    @app.post(
        "/sessions/{session_id}/generate/restart",
        status_code=status.HTTP_202_ACCEPTED,
        summary="Restart Session Generation",
        tags=["Sessions"],
    )
    def restart_generation(session_id: str, _: None = Depends(auth_dependency)) -> dict[str, str]:
        with _session(session_id) as controller:
            return {"job_id": controller.restart_generation()}

    @app.get("/sessions/{session_id}/job", summary="Session Job Status", tags=["Sessions"])
    def session_job(session_id: str, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        with _session(session_id) as controller:
            return job_manager.status_payload(controller.job_status())


@contextmanager
def _http_errors() -> Iterator[None]:
    """Translate storyforge errors into HTTP responses."""
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        logger.warning("Rejected request: {}", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except GenerationError as exc:
        logger.error("Generation request failed: {}", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def _session_payload(controller: WorkflowController) -> dict[str, Any]:
    structure = controller.structure
    return {
        "step": controller.step.value,
        "cover": controller.cover.model_dump() if controller.cover else None,
        "intent": controller.intent,
        "active_pitches": [pitch.model_dump() for pitch in controller.active_pitches],
        "word_cloud": dict(controller.word_cloud.top()),
        "approved": len(controller.preferences.approved),
        "structure": structure.model_dump() if structure else None,
        "job_id": controller.job_id,
    }


def _build_auth_dependency(auth_config: WebAuthConfig | None) -> Callable[..., Any]:
    """Return a dependency that validates the configured auth token."""

    if not auth_config or not auth_config.enabled:
        async def _no_auth() -> None:  # pragma: no cover - trivial branch
            return None

        return _no_auth

    expected_token = auth_config.token or ""
    header_alias = auth_config.header_name

    async def _verify_token(
        provided_token: str | None = Header(default=None, alias=header_alias),
    ) -> None:
        if provided_token is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing authentication token.",
            )
        if not secrets.compare_digest(provided_token, expected_token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication token.",
            )

    return _verify_token


__all__ = ["IntentRequest", "VoteRequest", "create_app"]
