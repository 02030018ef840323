"""Process-lifetime registry of workflow sessions served over HTTP."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from uuid import uuid4

from loguru import logger

from storyforge.errors import NotFoundError

from .controller import WorkflowController


@dataclass(slots=True)
class _Session:
    controller: WorkflowController
    lock: Lock = field(default_factory=Lock)


class SessionRegistry:
    """Maps session ids to controllers.

    A controller is not thread-safe, so every operation on a session runs
    under that session's own lock. Different sessions proceed in parallel.
    """

    def __init__(self, factory: Callable[[], WorkflowController]) -> None:
        self._factory = factory
        self._lock = Lock()
        self._sessions: dict[str, _Session] = {}

    def create(self) -> str:
        session_id = f"session_{uuid4().hex}"
        session = _Session(self._factory())
        with self._lock:
            self._sessions[session_id] = session
        logger.info("Workflow session {} created", session_id)
        return session_id

    @contextmanager
    def use(self, session_id: str) -> Iterator[WorkflowController]:
        """Yield the session's controller while holding its lock."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        with session.lock:
            yield session.controller

    def delete(self, session_id: str) -> None:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is None:
            raise NotFoundError(f"Session '{session_id}' not found")

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)


__all__ = ["SessionRegistry"]
