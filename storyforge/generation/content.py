"""Content generation powered by LLM configuration.

Every request goes through a small client interface returning raw text. The
output is then parsed and validated into :mod:`storyforge.models` schemas, so
malformed upstream output surfaces as :class:`GenerationError` instead of
untyped data.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import litellm
from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from storyforge.config.llm import LLMConfig
from storyforge.errors import GenerationError
from storyforge.models import Candidate, Chapter, CoverChoice, Profile, Structure, TrackSuggestion

from .models import GenerationContext

ModelT = TypeVar("ModelT", bound=BaseModel)

EMOTIONAL_DIMENSIONS: tuple[str, ...] = (
    "melancholic",
    "uplifting",
    "introspective",
    "energetic",
    "nostalgic",
    "romantic",
    "rebellious",
    "peaceful",
)


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """One call to the language model.

    ``context`` carries the structured inputs the prompt was rendered from so
    that offline clients can answer without parsing prose.
    """

    task: str
    prompt: str
    max_tokens: int
    expect_json: bool = True
    context: Mapping[str, Any] = field(default_factory=dict)


class _LLMClient(Protocol):
    def complete(self, request: CompletionRequest) -> str:
        """Return the raw completion text."""
        ...


class StoryGenerator:
    """Generate profiles, pitches, structures and chapters using a real or stubbed LLM client."""

    def __init__(
        self,
        llm_config: LLMConfig,
        *,
        client: _LLMClient | None = None,
        tokens_per_page: int = 500,
        words_per_page: int = 250,
    ) -> None:
        self._config = llm_config
        self._client = client or _build_client(llm_config)
        self._tokens_per_page = tokens_per_page
        self._words_per_page = words_per_page

    # ------------------------------------------------------------------
    def generate_profile(self, intent: str, cover: CoverChoice) -> Profile:
        """Derive the genome: attribute tags, emotional vector and matching tracks."""
        logger.debug("Extracting profile attributes for cover {}/{}", cover.style, cover.mood)
        attributes = self._request_object(
            CompletionRequest(
                task="attributes",
                prompt=_attributes_prompt(intent, cover),
                max_tokens=1500,
                context={"intent": intent, "cover": cover.model_dump()},
            )
        )
        profile = _validate(Profile, {**attributes, "tracks": []}, task="attributes")

        tracks_payload = self._request_object(
            CompletionRequest(
                task="tracks",
                prompt=_tracks_prompt(profile),
                max_tokens=3000,
                context={"profile": profile.model_dump()},
            )
        )
        tracks = _validate_list(TrackSuggestion, tracks_payload, key="tracks", id_prefix="track", task="tracks")
        tracks = _dedupe_ids(tracks, prefix="track")
        return profile.model_copy(update={"tracks": tuple(tracks)})

    def generate_pitches(
        self,
        *,
        intent: str,
        cover: CoverChoice,
        profile: Profile,
        count: int,
        max_pages: int,
    ) -> list[Candidate]:
        payload = self._request_object(
            CompletionRequest(
                task="pitches",
                prompt=_pitches_prompt(intent, cover, profile, count=count, max_pages=max_pages),
                max_tokens=3000,
                context={"intent": intent, "profile": profile.model_dump(), "count": count},
            )
        )
        pitches = _validate_list(Candidate, payload, key="pitches", id_prefix="pitch", task="pitches")
        if not pitches:
            raise GenerationError("pitches: generator returned no pitches")
        return pitches

    def refine_pitch(
        self,
        *,
        terms: Mapping[str, int],
        approved: Sequence[Candidate],
        denied: Sequence[Candidate],
        profile: Profile | None = None,
    ) -> Candidate:
        """Ask for one new pitch steered by the word cloud and past votes."""
        payload = self._request_object(
            CompletionRequest(
                task="refine",
                prompt=_refine_prompt(terms, approved, denied),
                max_tokens=1500,
                context={
                    "terms": dict(terms),
                    "approved": [pitch.core for pitch in approved],
                    "denied": [pitch.core for pitch in denied],
                    "attributes": list(profile.primary) if profile else [],
                },
            )
        )
        if isinstance(payload.get("pitch"), dict):
            payload = payload["pitch"]
        return _validate(Candidate, payload, task="refine")

    def create_structure(
        self,
        *,
        approved: Sequence[Candidate],
        terms: Mapping[str, int],
        cover: CoverChoice,
        intent: str,
        max_pages: int,
    ) -> Structure:
        payload = self._request_object(
            CompletionRequest(
                task="structure",
                prompt=_structure_prompt(approved, terms, cover, intent, max_pages=max_pages),
                max_tokens=4000,
                context={"titles": [pitch.title for pitch in approved], "max_pages": max_pages},
            )
        )
        structure = _validate(Structure, payload, task="structure")
        if not structure.chapters:
            raise GenerationError("structure: generator returned no chapters")
        return structure

    def write_chapter(self, chapter: Chapter, structure: Structure, *, context: GenerationContext) -> str:
        request = CompletionRequest(
            task="chapter",
            prompt=_chapter_prompt(chapter, structure, context, words_per_page=self._words_per_page),
            max_tokens=chapter.target_pages * self._tokens_per_page,
            expect_json=False,
            context={
                "number": chapter.number,
                "title": chapter.title,
                "target_words": chapter.target_pages * self._words_per_page,
            },
        )
        text = self._complete(request)
        logger.debug("Chapter {} returned {} words", chapter.number, len(text.split()))
        return text

    # ------------------------------------------------------------------
    def _complete(self, request: CompletionRequest) -> str:
        try:
            raw_output = self._client.complete(request)
        except GenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise GenerationError(f"{request.task}: LLM request failed: {exc}") from exc
        if not isinstance(raw_output, str) or not raw_output.strip():
            raise GenerationError(f"{request.task}: LLM returned empty response")
        return raw_output.strip()

    def _request_object(self, request: CompletionRequest) -> dict[str, Any]:
        payload = _parse_json_payload(self._complete(request), task=request.task)
        if not isinstance(payload, dict):
            raise GenerationError(f"{request.task}: expected a JSON object, got {type(payload).__name__}")
        return payload


# ----------------------------------------------------------------------
# parsing


_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def _parse_json_payload(raw_output: str, *, task: str) -> Any:
    text = raw_output.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"{task}: LLM output is not valid JSON ({exc.msg})") from exc


def _validate(model: type[ModelT], payload: Any, *, task: str) -> ModelT:
    try:
        return model.model_validate(payload)
    except SchemaError as exc:
        raise GenerationError(f"{task}: LLM output does not match {model.__name__}: {exc.error_count()} errors") from exc


def _validate_list(
    model: type[ModelT],
    payload: Mapping[str, Any],
    *,
    key: str,
    id_prefix: str,
    task: str,
) -> list[ModelT]:
    items = payload.get(key)
    if not isinstance(items, list):
        raise GenerationError(f"{task}: expected '{key}' to be a JSON array")
    normalised = [
        {**item, "id": item.get("id") or f"{id_prefix}_{index}"} if isinstance(item, dict) else item
        for index, item in enumerate(items, start=1)
    ]
    return [_validate(model, item, task=task) for item in normalised]


def _dedupe_ids(tracks: list[TrackSuggestion], *, prefix: str) -> list[TrackSuggestion]:
    seen: set[str] = set()
    unique: list[TrackSuggestion] = []
    for index, track in enumerate(tracks, start=1):
        if track.id in seen:
            track = track.model_copy(update={"id": f"{prefix}_{index}"})
        seen.add(track.id)
        unique.append(track)
    return unique


# ----------------------------------------------------------------------
# prompts


def _terms_block(terms: Mapping[str, int]) -> str:
    ranked = sorted(terms.items(), key=lambda item: (-item[1], item[0]))
    return json.dumps(dict(ranked), ensure_ascii=False, indent=2)


def _attributes_prompt(intent: str, cover: CoverChoice) -> str:
    dimensions = ", ".join(EMOTIONAL_DIMENSIONS)
    return (
        "Analyse this book description and extract musical/emotional attributes matching its vibe.\n\n"
        f"USER INTENT:\n{intent.strip()}\n\nCOVER: {cover.style} / {cover.mood}\n\n"
        'Return JSON: {"primary": [5-7 attributes], "secondary": [3-5 attributes], '
        '"vibe": "one sentence", "emotional": {dimension: 0.0-1.0}, "genre_hints": [genres]}\n'
        f"Emotional dimensions: {dimensions}."
    )


def _tracks_prompt(profile: Profile) -> str:
    return (
        "Suggest 10 songs that match this musical profile.\n\n"
        f"PRIMARY ATTRIBUTES: {', '.join(profile.primary)}\n"
        f"VIBE: {profile.vibe}\n"
        f"EMOTIONAL TONE: {json.dumps(profile.emotional or {})}\n"
        f"GENRE HINTS: {', '.join(profile.genre_hints)}\n\n"
        'Return JSON: {"tracks": [{"id": "track_1", "title": "...", "artist": "...", "reason": "...", '
        '"attributes": [...], "emotional": {dimension: 0.0-1.0}}]}'
    )


def _pitches_prompt(intent: str, cover: CoverChoice, profile: Profile, *, count: int, max_pages: int) -> str:
    tracks = "\n".join(
        f'- "{track.title}" by {track.artist} ({track.match or 0}% match); attributes: {", ".join(track.attribute_tags)}'
        for track in profile.tracks
    )
    return (
        f"Generate {count} distinct story pitches for a {max_pages}-page book.\n\n"
        f"USER INTENT:\n{intent.strip()}\n\nCOVER: {cover.style} / {cover.mood}\n\n"
        f"MUSICAL GENOME:\n{tracks or '- (none)'}\n\n"
        "Each pitch must capture both the intent and the musical vibe.\n"
        'Return JSON: {"pitches": [{"id": "pitch_1", "title": "...", "synopsis": "2-3 sentences", '
        '"keywords": [5-7 themes/emotions], "demographics": [audience tags], "core": [3-4 story pillars], '
        '"attributes": [musical attributes it shares with the genome]}]}'
    )


def _refine_prompt(terms: Mapping[str, int], approved: Sequence[Candidate], denied: Sequence[Candidate]) -> str:
    approved_lines = "\n".join("- " + ", ".join(pitch.core) for pitch in approved) or "- (none yet)"
    denied_lines = "\n".join("- " + ", ".join(pitch.core) for pitch in denied) or "- (none yet)"
    return (
        "Generate ONE new story pitch that learns from user feedback.\n\n"
        f"WORD CLOUD (higher weight = user likes more):\n{_terms_block(terms)}\n\n"
        f"APPROVED ELEMENTS:\n{approved_lines}\n\nDENIED ELEMENTS:\n{denied_lines}\n\n"
        "Emphasise high-weight keywords, build on approved themes, avoid denied patterns "
        "and offer a fresh angle.\n"
        'Return JSON: {"id": "pitch_refined_X", "title": "...", "synopsis": "...", "keywords": [...], '
        '"demographics": [...], "core": [...], "attributes": [...]}'
    )


def _structure_prompt(
    approved: Sequence[Candidate],
    terms: Mapping[str, int],
    cover: CoverChoice,
    intent: str,
    *,
    max_pages: int,
) -> str:
    pitches = "\n---\n".join(
        f"Title: {pitch.title}\nSynopsis: {pitch.synopsis}\nKeywords: {', '.join(pitch.keywords)}"
        for pitch in approved
    )
    return (
        "Create a complete book structure from these approved story elements.\n\n"
        f"USER INTENT:\n{intent.strip()}\n\nAPPROVED PITCHES:\n{pitches}\n\n"
        f"WORD CLOUD (emphasise these):\n{_terms_block(terms)}\n\n"
        f"CONSTRAINTS:\n- Maximum {max_pages} pages in total\n- Cover style: {cover.style}\n"
        "- Synthesise the best elements of all approved pitches into one narrative\n\n"
        'Return JSON: {"title": "...", "synopsis": "...", "chapters": [{"number": 1, "title": "...", '
        f'"summary": "2-3 sentences", "target_pages": n}}], "total_pages": n (<= {max_pages})}}'
    )


def _chapter_prompt(chapter: Chapter, structure: Structure, context: GenerationContext, *, words_per_page: int) -> str:
    outline = "\n".join(f"{item.number}. {item.title}" for item in structure.chapters)
    lines = [
        f'Write Chapter {chapter.number}: "{chapter.title}"',
        "",
        f"Summary: {chapter.summary}",
        "",
        "Context:",
        f"- Book title: {structure.title}",
        f"- Overall synopsis: {structure.synopsis}",
        f"- Chapter outline:\n{outline}",
    ]
    if context.terms:
        lines.append(f"- Word cloud emphasis: {', '.join(context.terms)}")
    if context.style:
        lines.append(f"- Style: {context.style}")
    lines.append(f"- Target length: ~{chapter.target_pages} pages")
    lines.append("")
    lines.append(
        "Write the COMPLETE chapter as plain prose without headings or commentary. "
        f"Aim for approximately {chapter.target_pages * words_per_page} words."
    )
    return "\n".join(lines)


# ----------------------------------------------------------------------
# clients


_GET_SUPPORTED_OPENAI_PARAMS = getattr(litellm, "get_supported_openai_params", None)


def _build_client(config: LLMConfig) -> _LLMClient:
    if config.is_stub:
        logger.debug("Using stub LLM client for alias {}", config.alias)
        return _StubLLMClient(config)
    logger.debug("Using LiteLLM client for alias {}", config.alias)
    return _LiteLLMClient(config, api_base=config.base_url.strip() or None)


def _guess_custom_provider(base_url: str | None) -> str | None:
    if not base_url:
        return None
    normalized = base_url.strip().lower()
    provider_hints: tuple[tuple[str, str], ...] = (
        ("anthropic", "anthropic"),
        ("generativelanguage.googleapis", "gemini"),
        ("vertex", "vertex_ai"),
        ("azure", "azure"),
        ("groq", "groq"),
        ("deepseek", "deepseek"),
        ("openrouter", "openrouter"),
        ("together.ai", "together_ai"),
    )
    for needle, provider in provider_hints:
        if needle in normalized:
            return provider
    return None


def _supports_response_format(model: str, provider: str | None) -> bool:
    if _GET_SUPPORTED_OPENAI_PARAMS is None:
        return False
    for candidate in dict.fromkeys((provider, None)):
        try:
            params = _GET_SUPPORTED_OPENAI_PARAMS(model=model, custom_llm_provider=candidate)  # type: ignore[misc]
        except Exception as exc:  # noqa: BLE001
            logger.debug("LiteLLM response_format probe failed for model {} (provider {}): {}", model, candidate, exc)
            continue
        if params and "response_format" in params:
            return True
    return False


def _extract_content(response: Any) -> str:
    choices = getattr(response, "choices", None)
    if choices is None and isinstance(response, dict):
        choices = response.get("choices")
    if not choices:
        return ""

    choice = choices[0]
    message = getattr(choice, "message", None)
    if message is None and isinstance(choice, dict):
        message = choice.get("message")
    if message is None:
        return ""

    content = getattr(message, "content", None)
    if content is None and isinstance(message, dict):
        content = message.get("content")
    if isinstance(content, list):
        return "\n".join(str(part).strip() for part in content if str(part).strip())
    return str(content).strip() if content is not None else ""


@dataclass(slots=True)
class _LiteLLMClient:
    """Client that delegates LLM calls to LiteLLM."""

    config: LLMConfig
    api_base: str | None
    api_key: str = field(init=False, repr=False)
    _custom_provider: str | None = field(init=False, repr=False, default=None)
    _json_mode: bool = field(init=False, repr=False, default=False)

    def __post_init__(self) -> None:
        self.api_key = self.config.api_key_secret
        self._custom_provider = _guess_custom_provider(self.api_base or self.config.base_url)
        self._json_mode = _supports_response_format(self.config.name, self._custom_provider)
        logger.debug(
            "LiteLLM client ready for alias {} (model {}) - response_format_supported={}",
            self.config.alias,
            self.config.name,
            self._json_mode,
        )

    def complete(self, request: CompletionRequest) -> str:
        system = "You are a creative writing assistant for an interactive book studio."
        if request.expect_json:
            system += " Respond with valid JSON only, no prose and no code fences."
        call_kwargs: dict[str, Any] = {
            "model": self.config.name,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": request.prompt},
            ],
            "max_tokens": request.max_tokens,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "api_key": self.api_key,
        }
        if self.api_base:
            call_kwargs["api_base"] = self.api_base
        if self.config.timeout is not None:
            call_kwargs["timeout"] = self.config.timeout
        if self.config.reasoning_effort:
            call_kwargs["reasoning_effort"] = self.config.reasoning_effort
        if request.expect_json and self._json_mode:
            call_kwargs["response_format"] = {"type": "json_object"}

        try:
            response = litellm.completion(**call_kwargs)
        except Exception as exc:  # noqa: BLE001
            raise GenerationError(f"{request.task}: LLM request failed: {exc}") from exc
        return _extract_content(response)


@dataclass(slots=True)
class _StubLLMClient:
    """Deterministic stand-in for a real LLM client, answering from request context."""

    config: LLMConfig
    _refined: int = field(init=False, default=0)

    def complete(self, request: CompletionRequest) -> str:
        handler = getattr(self, f"_{request.task}", None)
        if handler is None:
            raise GenerationError(f"Stub client cannot answer task '{request.task}'")
        result = handler(request.context)
        return result if isinstance(result, str) else json.dumps(result)

    def _attributes(self, context: Mapping[str, Any]) -> dict[str, Any]:
        words = _distinct_words(context.get("intent", ""))
        mood = str(context.get("cover", {}).get("mood", "")).lower()
        primary = (words[:5] or ["hopeful", "introspective"]) + ([mood] if mood else [])
        return {
            "primary": primary,
            "secondary": words[5:8],
            "vibe": f"A {mood or 'quiet'} story about {', '.join(words[:3]) or 'change'}.",
            "emotional": _stub_vector(" ".join(words)),
            "genre_hints": ["indie folk", "lo-fi"],
        }

    def _tracks(self, context: Mapping[str, Any]) -> dict[str, Any]:
        profile = context.get("profile", {})
        primary = list(profile.get("primary", []))
        tracks = []
        for index in range(1, 4):
            attributes = primary[index - 1:index + 2]
            tracks.append(
                {
                    "id": f"track_{index}",
                    "title": f"Stub Track {index}",
                    "artist": f"{self.config.name} Ensemble",
                    "reason": "Shares the requested mood.",
                    "attributes": attributes,
                    "emotional": _stub_vector(" ".join(attributes)),
                }
            )
        return {"tracks": tracks}

    def _pitches(self, context: Mapping[str, Any]) -> dict[str, Any]:
        primary = list(context.get("profile", {}).get("primary", [])) or ["hope"]
        pitches = []
        for index in range(1, int(context.get("count", 5)) + 1):
            keywords = [primary[(index + offset) % len(primary)] for offset in range(3)]
            pitches.append(
                {
                    "id": f"pitch_{index}",
                    "title": f"Pitch {index}",
                    "synopsis": f"A story built around {', '.join(keywords)}.",
                    "keywords": keywords,
                    "demographics": ["young adult" if index % 2 else "adult"],
                    "core": [f"pillar {index}.{pillar}" for pillar in range(1, 4)],
                    "attributes": keywords[:2],
                }
            )
        return {"pitches": pitches}

    def _refine(self, context: Mapping[str, Any]) -> dict[str, Any]:
        self._refined += 1
        terms = sorted(context.get("terms", {}).items(), key=lambda item: (-item[1], item[0]))
        keywords = [term for term, _ in terms[:3]] or list(context.get("attributes", []))[:3] or ["fresh"]
        return {
            "id": f"pitch_refined_{self._refined}",
            "title": f"Refined Pitch {self._refined}",
            "synopsis": f"A fresh angle on {', '.join(keywords)}.",
            "keywords": keywords,
            "demographics": ["adult"],
            "core": [f"refined pillar {self._refined}"],
            "attributes": keywords[:2],
        }

    def _structure(self, context: Mapping[str, Any]) -> dict[str, Any]:
        titles = list(context.get("titles", [])) or ["Untitled"]
        max_pages = int(context.get("max_pages", 96))
        chapter_count = min(3, max_pages)
        pages = max(1, min(4, max_pages // chapter_count))
        chapters = [
            {
                "number": number,
                "title": f"Chapter {number}",
                "summary": f"Part {number} of {' & '.join(titles)}.",
                "target_pages": pages,
            }
            for number in range(1, chapter_count + 1)
        ]
        return {
            "title": " / ".join(titles),
            "synopsis": f"A synthesis of {', '.join(titles)}.",
            "chapters": chapters,
            "total_pages": pages * chapter_count,
        }

    def _chapter(self, context: Mapping[str, Any]) -> str:
        count = int(context.get("target_words", 250))
        number = context.get("number", 1)
        return " ".join(f"c{number}w{index}" for index in range(1, count + 1))


def _distinct_words(text: str) -> list[str]:
    seen: dict[str, None] = {}
    for word in re.findall(r"[a-zA-Z]{4,}", text.lower()):
        seen.setdefault(word, None)
    return list(seen)


def _stub_vector(seed: str) -> dict[str, float]:
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return {dimension: round(digest[index] / 255, 2) for index, dimension in enumerate(EMOTIONAL_DIMENSIONS)}


__all__ = ["CompletionRequest", "EMOTIONAL_DIMENSIONS", "StoryGenerator"]
