"""Candidate scoring against a target profile."""

from __future__ import annotations

from .profile import ProfileMatcher

__all__ = ["ProfileMatcher"]
