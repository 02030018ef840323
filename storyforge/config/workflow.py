"""Workflow session configuration models."""

from __future__ import annotations

from pydantic import Field

from storyforge.config.base import BaseConfig


class PreferenceWeightsConfig(BaseConfig):
    """Weight deltas applied to the word cloud for each decision."""

    approve_keyword: int = Field(3, ge=0, description="Added to every keyword of an approved pitch")
    approve_demographic: int = Field(2, ge=0, description="Added to every demographic of an approved pitch")
    deny_keyword: int = Field(1, ge=0, description="Subtracted from every keyword of a denied pitch")


class WorkflowConfig(BaseConfig):
    """Policy knobs for the pitch voting loop."""

    min_approvals: int = Field(2, ge=1, description="Approved pitches required before building a structure")
    active_pitches: int = Field(5, ge=1, description="Number of pitches kept on the table while voting")
    cloud_terms: int = Field(12, ge=1, description="Top word cloud terms forwarded to generation requests")
    preference: PreferenceWeightsConfig = Field(default_factory=PreferenceWeightsConfig)


__all__ = ["PreferenceWeightsConfig", "WorkflowConfig"]
