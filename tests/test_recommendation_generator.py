from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from contribconnect.clients.contracts import FetchResult, FetchState
from contribconnect.errors import GenerationError, SchemaViolationError
from contribconnect.models.cultural import CulturalSignal
from contribconnect.models.recommendation import GenerationTier, OutcomeStatus, RecommendationPayload
from contribconnect.models.repository import BeginnerFriendlyRepo, RepositoryCandidate, SearchParams
from contribconnect.services.culture_mapper import map_to_cultural_tags
from contribconnect.services.fusion_scorer import FusionScorer
from contribconnect.services.link_validator import LinkValidator
from contribconnect.services.recommendation_generator import (
    GenerationContext,
    RecommendationGenerator,
    build_prompt,
)


class FakeProbeClient:
    def __init__(self, existing: set[str]) -> None:
        self.existing = existing

    async def probe_repository(self, owner: str, repo: str) -> FetchResult[bool]:
        if f"{owner}/{repo}" in self.existing:
            return FetchResult(state=FetchState.OK, data=True, status_code=200)
        return FetchResult(state=FetchState.NOT_FOUND, data=False, status_code=404)


class FakeLLM:
    def __init__(self, *, structured: Any = None, text: Any = None) -> None:
        self.structured = structured
        self.text = text
        self.prompts: list[tuple[str, str]] = []

    async def generate_object(self, prompt, schema):
        self.prompts.append(("object", prompt))
        if isinstance(self.structured, Exception):
            raise self.structured
        return schema.model_validate(self.structured)

    async def generate_text(self, prompt):
        self.prompts.append(("text", prompt))
        if isinstance(self.text, Exception):
            raise self.text
        return self.text


def _candidate(full_name: str, *, language: str = "Python", stars: int = 100, topics: tuple[str, ...] = ()) -> RepositoryCandidate:
    return RepositoryCandidate(
        full_name=full_name,
        url=f"https://github.com/{full_name}",
        description=f"{full_name} description",
        language=language,
        topics=topics,
        stars=stars,
    )


def _context(candidates: list[RepositoryCandidate], **overrides: Any) -> GenerationContext:
    ranked = FusionScorer().score(candidates, map_to_cultural_tags(["python"]))
    values = {
        "query": "Find me beginner Python projects",
        "params": SearchParams(query="Find me beginner Python projects", language="python", difficulty="beginner"),
        "ranked": ranked,
    }
    values.update(overrides)
    return GenerationContext(**values)


def _payload(*urls: str) -> dict[str, Any]:
    return {
        "projects": [
            {
                "name": url.rsplit("/", 2)[-2] + "/" + url.rsplit("/", 1)[-1],
                "description": "A good fit",
                "githubUrl": url,
                "languages": ["Python"],
                "topics": ["machine-learning"],
                "difficulty": "beginner",
                "explanation": "Matches your Python background.",
                "contributionTypes": ["code", "testing"],
                "score": 91,
            }
            for url in urls
        ],
        "reasoning": "Picked from the supplied candidates.",
        "user_analysis": {
            "experience_level": "beginner",
            "primary_languages": ["python"],
            "suggested_focus_areas": ["machine-learning"],
        },
    }


def _generator(llm: Any, existing: set[str]) -> RecommendationGenerator:
    return RecommendationGenerator(llm, LinkValidator(FakeProbeClient(existing)), require_grounded_urls=True)


SKLEARN = _candidate("scikit-learn/scikit-learn", stars=58000, topics=("machine-learning",))
PANDAS = _candidate("pandas-dev/pandas", stars=42000, topics=("data-analysis",))


def test_structured_tier_result_is_grounded_and_validated() -> None:
    llm = FakeLLM(structured=_payload("https://github.com/scikit-learn/scikit-learn/"))

    outcome = asyncio.run(_generator(llm, {"scikit-learn/scikit-learn"}).generate(_context([SKLEARN, PANDAS])))

    assert outcome.status == OutcomeStatus.OK
    assert outcome.tier == GenerationTier.STRUCTURED
    [project] = outcome.recommendations
    assert project.url == "https://github.com/scikit-learn/scikit-learn"
    assert project.stars == 58000
    assert project.contribution_score == 91
    assert [kind for kind, _ in llm.prompts] == ["object"]


def test_text_fallback_parses_fenced_json() -> None:
    fenced = "```json\n" + json.dumps(_payload("https://github.com/pandas-dev/pandas")) + "\n```"
    llm = FakeLLM(structured=GenerationError("provider timeout"), text=fenced)

    outcome = asyncio.run(_generator(llm, {"pandas-dev/pandas"}).generate(_context([SKLEARN, PANDAS])))

    assert outcome.status == OutcomeStatus.OK
    assert outcome.tier == GenerationTier.TEXT_FALLBACK
    assert [project.url for project in outcome.recommendations] == ["https://github.com/pandas-dev/pandas"]
    assert "Respond ONLY with valid JSON" in llm.prompts[1][1]


def test_heuristic_fallback_after_both_model_tiers_fail() -> None:
    candidates = [_candidate(f"org/repo{i}", stars=100 - i) for i in range(5)]
    llm = FakeLLM(structured=SchemaViolationError("bad shape"), text="definitely not json")

    outcome = asyncio.run(_generator(llm, {c.full_name for c in candidates}).generate(_context(candidates)))

    assert outcome.status == OutcomeStatus.OK
    assert outcome.tier == GenerationTier.HEURISTIC_FALLBACK
    assert len(outcome.recommendations) == 3
    assert [project.contribution_score for project in outcome.recommendations] == [70, 75, 80]
    assert outcome.metadata["states"] == [
        "gathering",
        "prompting",
        "structured",
        "text_fallback",
        "heuristic_fallback",
        "validating",
        "done",
    ]


def test_heuristic_fallback_uses_every_candidate_when_fewer_than_three() -> None:
    llm = FakeLLM(structured=RuntimeError("boom"), text=RuntimeError("boom again"))
    context = _context([SKLEARN, PANDAS], technologies=["python"])

    outcome = asyncio.run(_generator(llm, {SKLEARN.full_name, PANDAS.full_name}).generate(context))

    assert len(outcome.recommendations) == 2
    first = outcome.recommendations[0]
    assert first.contribution_score == 70
    assert first.difficulty == "beginner"
    assert first.explanation == "This project matches your query and uses Python technology."
    assert first.contribution_types == ["code", "documentation"]
    assert outcome.user_analysis.suggested_focus_areas == ["python"]


def test_missing_model_goes_straight_to_heuristics() -> None:
    outcome = asyncio.run(_generator(None, {SKLEARN.full_name}).generate(_context([SKLEARN])))

    assert outcome.tier == GenerationTier.HEURISTIC_FALLBACK
    assert outcome.metadata["states"] == ["gathering", "prompting", "heuristic_fallback", "validating", "done"]


def test_invented_repositories_are_dropped_and_trigger_next_tier() -> None:
    llm = FakeLLM(
        structured=_payload("https://github.com/made-up/project"),
        text=json.dumps(_payload("https://github.com/scikit-learn/scikit-learn", "https://github.com/also/invented")),
    )

    outcome = asyncio.run(_generator(llm, {"scikit-learn/scikit-learn", "made-up/project"}).generate(_context([SKLEARN])))

    assert outcome.tier == GenerationTier.TEXT_FALLBACK
    assert [project.url for project in outcome.recommendations] == ["https://github.com/scikit-learn/scikit-learn"]
    assert "https://github.com/made-up/project" in outcome.rejected_urls
    assert "https://github.com/also/invented" in outcome.rejected_urls


def test_all_links_invalid_is_an_explicit_condition() -> None:
    llm = FakeLLM(structured=_payload("https://github.com/scikit-learn/scikit-learn"))

    outcome = asyncio.run(_generator(llm, set()).generate(_context([SKLEARN])))

    assert outcome.status == OutcomeStatus.NO_VALID_RECOMMENDATIONS
    assert outcome.recommendations == []
    assert outcome.rejected_urls == ["https://github.com/scikit-learn/scikit-learn"]


def test_no_candidates_skips_generation() -> None:
    llm = FakeLLM(structured=_payload("https://github.com/x/y"))

    outcome = asyncio.run(_generator(llm, set()).generate(_context([])))

    assert outcome.status == OutcomeStatus.NO_CANDIDATES
    assert llm.prompts == []
    assert outcome.metadata["states"] == ["gathering", "done"]


def test_prompt_only_lists_gathered_candidates() -> None:
    signal = CulturalSignal(tags=frozenset({"ai"}), insights_available=True)
    unrelated = _candidate("corp/java-thing", language="Java")
    prompt = build_prompt(_context([unrelated, SKLEARN], cultural=signal), limit=1)

    assert "https://github.com/scikit-learn/scikit-learn" in prompt
    assert "corp/java-thing" not in prompt
    assert "ONLY from the candidate list" in prompt
    assert "Cultural alignment" in prompt


def test_prompt_omits_cultural_section_when_unavailable() -> None:
    prompt = build_prompt(_context([SKLEARN], cultural=CulturalSignal.unavailable()), limit=5)

    assert "Cultural signals" not in prompt
    assert "Cultural alignment" not in prompt


def test_prompt_lists_beginner_friendly_options() -> None:
    starter = BeginnerFriendlyRepo(candidate=_candidate("first-timers/starter", stars=320), beginner_friendly_score=75)

    prompt = build_prompt(_context([SKLEARN], beginner_friendly=[starter]), limit=5)

    assert "Beginner-friendly options:" in prompt
    assert "1. first-timers/starter (320 stars, beginner score 75)" in prompt
    assert "URL: https://github.com/first-timers/starter" in prompt


def test_prompt_has_no_beginner_section_without_options() -> None:
    assert "Beginner-friendly options" not in build_prompt(_context([SKLEARN]), limit=5)


def test_beginner_friendly_option_counts_as_grounded() -> None:
    starter = BeginnerFriendlyRepo(candidate=_candidate("first-timers/starter"), beginner_friendly_score=50)
    llm = FakeLLM(structured=_payload("https://github.com/first-timers/starter"))

    outcome = asyncio.run(
        _generator(llm, {"first-timers/starter"}).generate(_context([SKLEARN], beginner_friendly=[starter]))
    )

    assert outcome.tier == GenerationTier.STRUCTURED
    assert [project.url for project in outcome.recommendations] == ["https://github.com/first-timers/starter"]
    assert outcome.rejected_urls == []


@pytest.mark.asyncio
async def test_generation_never_raises_with_candidates() -> None:
    llm = FakeLLM(structured=ValueError("x"), text=ValueError("y"))

    outcome = await _generator(llm, {SKLEARN.full_name}).generate(_context([SKLEARN]))

    assert outcome.ok
    assert RecommendationPayload.model_validate(
        {
            "projects": [project.model_dump() for project in outcome.recommendations],
            "reasoning": outcome.reasoning,
            "user_analysis": outcome.user_analysis.model_dump(),
        }
    )
