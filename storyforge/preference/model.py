"""Word cloud weighting driven by approve/deny decisions."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from storyforge.config.workflow import PreferenceWeightsConfig
from storyforge.models import Candidate


class Outcome(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class Decision:
    """A single recorded vote. Immutable once created."""

    candidate: Candidate
    outcome: Outcome


@dataclass(frozen=True, slots=True)
class PreferenceWeights:
    """Deltas applied per term. Denials never touch demographics."""

    approve_keyword: int = 3
    approve_demographic: int = 2
    deny_keyword: int = 1

    @classmethod
    def from_config(cls, config: PreferenceWeightsConfig) -> "PreferenceWeights":
        return cls(
            approve_keyword=config.approve_keyword,
            approve_demographic=config.approve_demographic,
            deny_keyword=config.deny_keyword,
        )


class WeightedTermSet(Mapping[str, int]):
    """Read-only term -> weight mapping holding only positive weights."""

    __slots__ = ("_weights",)

    def __init__(self, weights: Mapping[str, int] | None = None) -> None:
        self._weights = {term: weight for term, weight in (weights or {}).items() if weight > 0}

    def __getitem__(self, term: str) -> int:
        return self._weights[term]

    def __iter__(self) -> Iterator[str]:
        return iter(self._weights)

    def __len__(self) -> int:
        return len(self._weights)

    def __repr__(self) -> str:
        return f"WeightedTermSet({self._weights!r})"

    def top(self, limit: int | None = None) -> list[tuple[str, int]]:
        """Terms ordered by descending weight, ties broken alphabetically."""
        ranked = sorted(self._weights.items(), key=lambda item: (-item[1], item[0]))
        return ranked if limit is None else ranked[:limit]

    def to_dict(self) -> dict[str, int]:
        return dict(self._weights)


def term_deltas(decision: Decision, weights: PreferenceWeights) -> Iterator[tuple[str, int]]:
    candidate = decision.candidate
    if decision.outcome is Outcome.APPROVED:
        for keyword in candidate.keywords:
            yield keyword, weights.approve_keyword
        for demographic in candidate.demographics:
            yield demographic, weights.approve_demographic
    else:
        for keyword in candidate.keywords:
            yield keyword, -weights.deny_keyword


def compute_weights(history: Iterable[Decision], weights: PreferenceWeights | None = None) -> WeightedTermSet:
    """Recompute the word cloud from scratch for ``history``."""
    weights = weights or PreferenceWeights()
    totals: Counter[str] = Counter()
    for decision in history:
        for term, delta in term_deltas(decision, weights):
            totals[term] += delta
    return WeightedTermSet(totals)


class IncrementalWeights:
    """Running per-term totals that always match :func:`compute_weights`.

    Raw totals are kept even when they drop to zero or below so that a later
    approval lands on the same value a full recomputation would produce.
    """

    def __init__(self, weights: PreferenceWeights | None = None) -> None:
        self._weights = weights or PreferenceWeights()
        self._totals: Counter[str] = Counter()

    def apply(self, decision: Decision) -> None:
        for term, delta in term_deltas(decision, self._weights):
            self._totals[term] += delta

    def snapshot(self) -> WeightedTermSet:
        return WeightedTermSet(self._totals)


class PreferenceModel:
    """Records decisions in arrival order and exposes the resulting word cloud."""

    def __init__(self, weights: PreferenceWeights | None = None) -> None:
        self._weights = weights or PreferenceWeights()
        self._history: list[Decision] = []
        self._running = IncrementalWeights(self._weights)
        self._cloud = WeightedTermSet()

    def record_decision(self, candidate: Candidate, outcome: Outcome | str) -> WeightedTermSet:
        decision = Decision(candidate=candidate, outcome=Outcome(outcome))
        self._history.append(decision)
        self._running.apply(decision)
        self._cloud = self._running.snapshot()
        logger.debug(
            "Recorded {} for candidate {} ({} decisions, {} terms)",
            decision.outcome.value,
            candidate.id,
            len(self._history),
            len(self._cloud),
        )
        return self._cloud

    def recompute(self) -> WeightedTermSet:
        return compute_weights(self._history, self._weights)

    @property
    def word_cloud(self) -> WeightedTermSet:
        return self._cloud

    @property
    def history(self) -> tuple[Decision, ...]:
        return tuple(self._history)

    @property
    def approved(self) -> list[Candidate]:
        return [d.candidate for d in self._history if d.outcome is Outcome.APPROVED]

    @property
    def denied(self) -> list[Candidate]:
        return [d.candidate for d in self._history if d.outcome is Outcome.DENIED]


__all__ = [
    "Decision",
    "IncrementalWeights",
    "Outcome",
    "PreferenceModel",
    "PreferenceWeights",
    "WeightedTermSet",
    "compute_weights",
    "term_deltas",
]
