from __future__ import annotations

import random

from storyforge.matching import ProfileMatcher
from storyforge.models import Profile
from tests.utils import make_candidate


def test_overlap_only_when_candidate_has_no_vector() -> None:
    matcher = ProfileMatcher()
    profile = Profile(primary=("wistful", "acoustic", "warm"), secondary=("slow",), emotional={"peaceful": 0.8})
    candidate = make_candidate("t1", attributes=("wistful", "acoustic", "loud"))

    # 2 of 4 profile tags
    assert matcher.score(candidate, profile) == 50


def test_emotional_component_is_blended() -> None:
    matcher = ProfileMatcher()
    profile = Profile(
        primary=("wistful", "acoustic"),
        secondary=(),
        emotional={"melancholic": 0.8, "uplifting": 0.2},
    )
    candidate = make_candidate(
        "t1",
        attributes=("wistful",),
        emotional={"melancholic": 0.6, "uplifting": 0.4},
    )

    # overlap 50, emotional 1 - 0.2 = 0.8 -> 50 * 0.7 + 80 * 0.3 = 59
    assert matcher.score(candidate, profile) == 59


def test_empty_profile_tags_score_zero_overlap() -> None:
    matcher = ProfileMatcher()
    profile = Profile()
    candidate = make_candidate("t1", attributes=("anything",))

    assert ProfileMatcher.overlap(candidate, profile) == 0.0
    assert matcher.score(candidate, profile) == 0


def test_only_shared_dimensions_are_averaged() -> None:
    match = ProfileMatcher.emotional_match(
        {"melancholic": 0.5, "energetic": 1.0},
        {"melancholic": 0.7, "peaceful": 0.0},
    )
    assert match is not None
    assert abs(match - 0.8) < 1e-9


def test_disjoint_dimensions_fall_back_to_overlap() -> None:
    matcher = ProfileMatcher()
    profile = Profile(primary=("a", "b", "c"), emotional={"peaceful": 0.9})
    candidate = make_candidate("t1", attributes=("a",), emotional={"energetic": 0.1})

    assert ProfileMatcher.emotional_match(candidate.emotional, profile.emotional) is None
    assert matcher.score(candidate, profile) == 33


def test_half_values_round_up() -> None:
    matcher = ProfileMatcher()
    profile = Profile(primary=("a", "b", "c", "d", "e", "f", "g", "h"))
    candidate = make_candidate("t1", attributes=("a",))

    # 12.5 rounds to 13
    assert matcher.score(candidate, profile) == 13


def test_score_is_bounded_and_pure() -> None:
    rng = random.Random(11)
    tags = ["a", "b", "c", "d", "e", "f"]
    dims = ["melancholic", "uplifting", "energetic"]
    matcher = ProfileMatcher()

    for _ in range(100):
        profile = Profile(
            primary=tuple(rng.sample(tags, k=rng.randint(0, 3))),
            secondary=tuple(rng.sample(tags, k=rng.randint(0, 3))),
            emotional={d: rng.random() for d in rng.sample(dims, k=rng.randint(0, 3))} or None,
        )
        candidate = make_candidate(
            "c",
            attributes=tuple(rng.sample(tags, k=rng.randint(0, 6))),
            emotional={d: rng.random() for d in rng.sample(dims, k=rng.randint(0, 3))} or None,
        )
        first = matcher.score(candidate, profile)
        assert 0 <= first <= 100
        assert matcher.score(candidate, profile) == first


def test_rank_orders_best_first_and_keeps_ties_stable() -> None:
    matcher = ProfileMatcher()
    profile = Profile(primary=("a", "b"))
    weak = make_candidate("weak", attributes=())
    strong = make_candidate("strong", attributes=("a", "b"))
    tie_one = make_candidate("tie_one", attributes=("a",))
    tie_two = make_candidate("tie_two", attributes=("b",))

    ranked = matcher.rank([weak, tie_one, strong, tie_two], profile)

    assert [candidate.id for candidate in ranked] == ["strong", "tie_one", "tie_two", "weak"]
    assert [candidate.match for candidate in ranked] == [100, 50, 50, 0]
    assert weak.match is None
