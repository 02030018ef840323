"""Preference learning from pitch votes."""

from __future__ import annotations

from .model import (
    Decision,
    IncrementalWeights,
    Outcome,
    PreferenceModel,
    PreferenceWeights,
    WeightedTermSet,
    compute_weights,
)

__all__ = [
    "Decision",
    "IncrementalWeights",
    "Outcome",
    "PreferenceModel",
    "PreferenceWeights",
    "WeightedTermSet",
    "compute_weights",
]
