"""Score candidates against the genome profile of a session."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import TypeVar

from storyforge.models import Candidate, Profile

CandidateT = TypeVar("CandidateT", bound=Candidate)

OVERLAP_WEIGHT = 0.7
EMOTIONAL_WEIGHT = 0.3


class ProfileMatcher:
    """Blend attribute tag overlap with emotional vector distance into a 0-100 score."""

    def score(self, candidate: Candidate, profile: Profile) -> int:
        overlap = self.overlap(candidate, profile)
        emotional = self.emotional_match(candidate.emotional, profile.emotional)
        if emotional is None:
            combined = overlap
        else:
            combined = overlap * OVERLAP_WEIGHT + emotional * 100 * EMOTIONAL_WEIGHT
        return min(100, max(0, _round_half_up(combined)))

    def rank(self, candidates: Iterable[CandidateT], profile: Profile) -> list[CandidateT]:
        """Return scored copies, best match first; ties keep input order."""
        scored = [candidate.model_copy(update={"match": self.score(candidate, profile)}) for candidate in candidates]
        return sorted(scored, key=lambda candidate: -(candidate.match or 0))

    @staticmethod
    def overlap(candidate: Candidate, profile: Profile) -> float:
        targets = profile.tag_union
        if not targets:
            return 0.0
        shared = targets.intersection(candidate.attribute_tags)
        return len(shared) / len(targets) * 100

    @staticmethod
    def emotional_match(
        candidate_vector: Mapping[str, float] | None,
        profile_vector: Mapping[str, float] | None,
    ) -> float | None:
        """``1 - mean |difference|`` over shared dimensions, or ``None`` without any."""
        if not candidate_vector or not profile_vector:
            return None
        dimensions = candidate_vector.keys() & profile_vector.keys()
        if not dimensions:
            return None
        total = sum(abs(candidate_vector[d] - profile_vector[d]) for d in dimensions)
        return max(0.0, 1.0 - total / len(dimensions))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


__all__ = ["EMOTIONAL_WEIGHT", "OVERLAP_WEIGHT", "ProfileMatcher"]
