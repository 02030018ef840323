"""Interactive session orchestration."""

from __future__ import annotations

from .controller import PitchSource, WorkflowController, WorkflowStep
from .sessions import SessionRegistry

__all__ = ["PitchSource", "SessionRegistry", "WorkflowController", "WorkflowStep"]
