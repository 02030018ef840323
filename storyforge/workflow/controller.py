"""Session state machine: cover -> intent -> profile -> pitching -> structure -> generating."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Protocol

from loguru import logger

from storyforge.config import AppConfig
from storyforge.errors import GenerationError, NotFoundError, StepError, ValidationError
from storyforge.generation.jobs import GenerationJobManager
from storyforge.generation.models import GenerationContext, Job, JobState
from storyforge.matching import ProfileMatcher
from storyforge.models import Candidate, CoverChoice, Profile, Structure
from storyforge.preference import Outcome, PreferenceModel, PreferenceWeights, WeightedTermSet


class WorkflowStep(str, Enum):
    COVER = "cover"
    INTENT = "intent"
    PROFILE = "profile"
    PITCHING = "pitching"
    STRUCTURE = "structure"
    GENERATING = "generating"


_STEP_ORDER: tuple[WorkflowStep, ...] = tuple(WorkflowStep)


class PitchSource(Protocol):
    def generate_profile(self, intent: str, cover: CoverChoice) -> Profile: ...

    def generate_pitches(
        self, *, intent: str, cover: CoverChoice, profile: Profile, count: int, max_pages: int
    ) -> list[Candidate]: ...

    def refine_pitch(
        self,
        *,
        terms: Mapping[str, int],
        approved: Sequence[Candidate],
        denied: Sequence[Candidate],
        profile: Profile | None = None,
    ) -> Candidate: ...

    def create_structure(
        self,
        *,
        approved: Sequence[Candidate],
        terms: Mapping[str, int],
        cover: CoverChoice,
        intent: str,
        max_pages: int,
    ) -> Structure: ...


class WorkflowController:
    """Drives one user session from cover selection to a running generation job.

    Steps only move forward. ``pitching`` loops internally: every vote removes
    the candidate from the table and requests one replacement, so the active
    set keeps its size until the user advances.
    """

    def __init__(
        self,
        generator: PitchSource,
        job_manager: GenerationJobManager,
        *,
        matcher: ProfileMatcher | None = None,
        preferences: PreferenceModel | None = None,
        min_approvals: int = 2,
        active_pitches: int = 5,
        cloud_terms: int = 12,
        default_style: str | None = None,
    ) -> None:
        if min_approvals < 1:
            raise ValidationError("min_approvals must be at least 1")
        if active_pitches < 1:
            raise ValidationError("active_pitches must be at least 1")
        self._generator = generator
        self._jobs = job_manager
        self._matcher = matcher or ProfileMatcher()
        self._preferences = preferences or PreferenceModel()
        self._min_approvals = min_approvals
        self._active_target = active_pitches
        self._cloud_terms = cloud_terms
        self._default_style = default_style

        self._step = WorkflowStep.COVER
        self._cover: CoverChoice | None = None
        self._intent: str | None = None
        self._profile: Profile | None = None
        self._active: list[Candidate] = []
        self._seen_ids: set[str] = set()
        self._structure: Structure | None = None
        self._job_id: str | None = None
        self._context: GenerationContext | None = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        generator: PitchSource,
        job_manager: GenerationJobManager,
    ) -> "WorkflowController":
        workflow_cfg = config.workflow
        return cls(
            generator,
            job_manager,
            preferences=PreferenceModel(PreferenceWeights.from_config(workflow_cfg.preference)),
            min_approvals=workflow_cfg.min_approvals,
            active_pitches=workflow_cfg.active_pitches,
            cloud_terms=workflow_cfg.cloud_terms,
            default_style=config.generation.style if config.generation else None,
        )

    # ------------------------------------------------------------------
    @property
    def step(self) -> WorkflowStep:
        return self._step

    @property
    def cover(self) -> CoverChoice | None:
        return self._cover

    @property
    def intent(self) -> str | None:
        return self._intent

    @property
    def profile(self) -> Profile | None:
        return self._profile

    @property
    def active_pitches(self) -> tuple[Candidate, ...]:
        return tuple(self._active)

    @property
    def word_cloud(self) -> WeightedTermSet:
        return self._preferences.word_cloud

    @property
    def preferences(self) -> PreferenceModel:
        return self._preferences

    @property
    def structure(self) -> Structure | None:
        return self._structure

    @property
    def job_id(self) -> str | None:
        return self._job_id

    # ------------------------------------------------------------------
    def select_cover(self, cover: CoverChoice) -> None:
        self._require(WorkflowStep.COVER)
        self._cover = cover
        self._advance(WorkflowStep.INTENT)

    def submit_intent(self, intent: str) -> Profile:
        """Store the user's description and derive the genome profile from it."""
        self._require(WorkflowStep.INTENT)
        if not intent or not intent.strip():
            raise ValidationError("Intent must not be empty")
        assert self._cover is not None

        profile = self._generator.generate_profile(intent.strip(), self._cover)
        ranked_tracks = self._matcher.rank(profile.tracks, profile)
        self._intent = intent.strip()
        self._profile = profile.model_copy(update={"tracks": tuple(ranked_tracks)})
        logger.info(
            "Profile ready: {} primary, {} secondary attributes, {} tracks",
            len(profile.primary),
            len(profile.secondary),
            len(ranked_tracks),
        )
        self._advance(WorkflowStep.PROFILE)
        return self._profile

    def start_pitching(self) -> tuple[Candidate, ...]:
        self._require(WorkflowStep.PROFILE)
        assert self._cover is not None and self._intent is not None and self._profile is not None

        pitches = self._generator.generate_pitches(
            intent=self._intent,
            cover=self._cover,
            profile=self._profile,
            count=self._active_target,
            max_pages=self._jobs.max_pages,
        )
        for pitch in pitches[: self._active_target]:
            self._active.append(self._register(pitch))
        self._active = self._matcher.rank(self._active, self._profile)
        self._advance(WorkflowStep.PITCHING)
        if len(self._active) < self._active_target:
            self.refill_pitches()
        return self.active_pitches

    def vote(self, candidate_id: str, outcome: Outcome | str) -> WeightedTermSet:
        """Record a decision on an active pitch and request its replacement.

        The decision is kept even when the replacement request fails; the
        :class:`GenerationError` propagates and :meth:`refill_pitches` can be
        retried.
        """
        self._require(WorkflowStep.PITCHING)
        try:
            outcome = Outcome(outcome)
        except ValueError as exc:
            raise ValidationError(f"Unknown vote outcome: {outcome!r}") from exc
        candidate = next((pitch for pitch in self._active if pitch.id == candidate_id), None)
        if candidate is None:
            raise NotFoundError(f"Pitch '{candidate_id}' is not on the table")

        cloud = self._preferences.record_decision(candidate, outcome)
        self._active.remove(candidate)
        logger.info(
            "Pitch {} {} ({} approved so far)",
            candidate_id,
            outcome.value,
            len(self._preferences.approved),
        )
        self.refill_pitches()
        return cloud

    def refill_pitches(self) -> tuple[Candidate, ...]:
        self._require(WorkflowStep.PITCHING)
        assert self._profile is not None
        while len(self._active) < self._active_target:
            try:
                replacement = self._generator.refine_pitch(
                    terms=self._preferences.word_cloud,
                    approved=self._preferences.approved,
                    denied=self._preferences.denied,
                    profile=self._profile,
                )
            except GenerationError as exc:
                logger.warning("Replacement pitch request failed: {}", exc)
                raise
            scored = replacement.model_copy(update={"match": self._matcher.score(replacement, self._profile)})
            self._active.append(self._register(scored))
        return self.active_pitches

    def advance_to_structure(self) -> Structure:
        self._require(WorkflowStep.PITCHING)
        approved = self._preferences.approved
        if len(approved) < self._min_approvals:
            raise ValidationError(
                f"At least {self._min_approvals} approved pitches are required, have {len(approved)}"
            )
        assert self._cover is not None and self._intent is not None

        structure = self._generator.create_structure(
            approved=approved,
            terms=self._preferences.word_cloud,
            cover=self._cover,
            intent=self._intent,
            max_pages=self._jobs.max_pages,
        )
        self._structure = structure
        self._active.clear()
        logger.info("Structure '{}' ready: {} chapters", structure.title, len(structure.chapters))
        self._advance(WorkflowStep.STRUCTURE)
        return structure

    def start_generation(self) -> str:
        """Hand the approved structure to the job manager; returns once a job id exists."""
        self._require(WorkflowStep.STRUCTURE)
        assert self._structure is not None

        context = GenerationContext(
            terms=tuple(term for term, _ in self._preferences.word_cloud.top(self._cloud_terms)),
            style=self._cover.style if self._cover else self._default_style,
        )
        self._job_id = self._jobs.start_job(self._structure, context=context)
        self._context = context
        self._advance(WorkflowStep.GENERATING)
        return self._job_id

    def restart_generation(self) -> str:
        """Start a fresh job for the same structure after a failed or cancelled one.

        Pages of the previous job are not carried over.
        """
        self._require(WorkflowStep.GENERATING)
        assert self._structure is not None
        previous = self.job_status()
        if not previous.state.is_terminal:
            raise StepError(f"Job {previous.id} is still {previous.state.value}")
        if previous.state is JobState.COMPLETE:
            raise StepError(f"Job {previous.id} already completed")

        self._job_id = self._jobs.start_job(self._structure, context=self._context)
        logger.info("Restarted generation: job {} replaces {} ({})", self._job_id, previous.id, previous.state.value)
        return self._job_id

    def job_status(self) -> Job:
        if self._job_id is None:
            raise StepError("No generation job has been started for this session")
        return self._jobs.get_status(self._job_id)

    # ------------------------------------------------------------------
    def _require(self, step: WorkflowStep) -> None:
        if self._step is not step:
            raise StepError(f"Operation requires step '{step.value}', session is at '{self._step.value}'")

    def _advance(self, target: WorkflowStep) -> None:
        if _STEP_ORDER.index(target) != _STEP_ORDER.index(self._step) + 1:
            raise StepError(f"Cannot move from '{self._step.value}' to '{target.value}'")
        logger.debug("Workflow step {} -> {}", self._step.value, target.value)
        self._step = target

    def _register(self, candidate: Candidate) -> Candidate:
        """Give the candidate an id not used earlier in this session."""
        candidate_id = candidate.id
        suffix = 1
        while candidate_id in self._seen_ids:
            suffix += 1
            candidate_id = f"{candidate.id}_{suffix}"
        self._seen_ids.add(candidate_id)
        if candidate_id != candidate.id:
            candidate = candidate.model_copy(update={"id": candidate_id})
        return candidate


__all__ = ["PitchSource", "WorkflowController", "WorkflowStep"]
