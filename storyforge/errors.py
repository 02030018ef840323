"""Exception taxonomy shared across storyforge components."""

from __future__ import annotations


class StoryforgeError(RuntimeError):
    """Base class for all storyforge errors."""


class ValidationError(StoryforgeError):
    """Raised when a public operation receives malformed input."""


class StepError(ValidationError):
    """Raised when a workflow operation is called outside its step."""


class NotFoundError(StoryforgeError):
    """Raised when a job or candidate identifier is unknown."""


class GenerationError(StoryforgeError):
    """Raised when the content generator fails or returns unusable output."""


__all__ = [
    "GenerationError",
    "NotFoundError",
    "StepError",
    "StoryforgeError",
    "ValidationError",
]
