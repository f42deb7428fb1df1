"""Recommendation generation with a three-tier fallback and link validation."""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from contribconnect.clients.log_sanitizer import sanitize_log_extra
from contribconnect.config.settings import settings
from contribconnect.errors import SchemaViolationError
from contribconnect.models.cultural import CulturalSignal, ScoredProject
from contribconnect.models.profile import TechnicalProfile
from contribconnect.models.recommendation import (
    GenerationTier,
    OutcomeStatus,
    Recommendation,
    RecommendationOutcome,
    RecommendationPayload,
    UserAnalysis,
)
from contribconnect.models.repository import DIFFICULTY_TIERS, BeginnerFriendlyRepo, RepositoryCandidate, SearchParams
from contribconnect.services.link_validator import LinkValidator
from contribconnect.services.llm import JSON_ONLY_INSTRUCTION, parse_json_response

logger = logging.getLogger(__name__)

HEURISTIC_BASE_SCORE = 70
HEURISTIC_SCORE_STEP = 5
DEFAULT_DIFFICULTY = "intermediate"
DEFAULT_FOCUS_AREA = "general-development"


class GenerationState(str, enum.Enum):
    GATHERING = "gathering"
    PROMPTING = "prompting"
    STRUCTURED = "structured"
    TEXT_FALLBACK = "text_fallback"
    HEURISTIC_FALLBACK = "heuristic_fallback"
    VALIDATING = "validating"
    DONE = "done"


_TIER_BY_STATE = {
    GenerationState.STRUCTURED: GenerationTier.STRUCTURED,
    GenerationState.TEXT_FALLBACK: GenerationTier.TEXT_FALLBACK,
    GenerationState.HEURISTIC_FALLBACK: GenerationTier.HEURISTIC_FALLBACK,
}


class GenerativeModel(Protocol):
    async def generate_object(self, prompt: str, schema: type[RecommendationPayload]) -> RecommendationPayload: ...

    async def generate_text(self, prompt: str) -> str: ...


@dataclass(slots=True)
class GenerationContext:
    """Everything gathered for one request. The prompt is built from this alone."""

    query: str
    params: SearchParams
    ranked: list[ScoredProject]
    profile: Optional[TechnicalProfile] = None
    cultural: Optional[CulturalSignal] = None
    technologies: list[str] = field(default_factory=list)
    beginner_friendly: list[BeginnerFriendlyRepo] = field(default_factory=list)

    @property
    def candidates(self) -> list[RepositoryCandidate]:
        return [item.candidate for item in self.ranked]

    @property
    def grounding_candidates(self) -> list[RepositoryCandidate]:
        """Ranked candidates plus beginner-friendly options; the model may pick from either."""

        listed = self.candidates
        listed.extend(item.candidate for item in self.beginner_friendly)
        return listed


class RecommendationGenerator:
    """Turns gathered signals into validated recommendations.

    Runs an explicit state machine::

        GATHERING -> PROMPTING -> STRUCTURED -> TEXT_FALLBACK -> HEURISTIC_FALLBACK
            |                        |              |                   |
            +-> DONE                 +--------------+---------> VALIDATING -> DONE

    GATHERING checks the signals collected by the caller and stops early when
    there are no candidates.

    A model tier that errors, violates the schema or proposes nothing from the
    candidate list moves to the next tier. The heuristic tier never calls the
    model and always succeeds for at least one candidate, so ``generate`` only
    returns ``NO_CANDIDATES`` or ``NO_VALID_RECOMMENDATIONS`` when there is
    genuinely nothing to recommend.
    """

    def __init__(
        self,
        llm: Optional[GenerativeModel],
        link_validator: LinkValidator,
        *,
        require_grounded_urls: Optional[bool] = None,
    ) -> None:
        self._llm = llm
        self._link_validator = link_validator
        self._require_grounded = (
            settings.RECOMMENDATION_REQUIRE_GROUNDED_URLS if require_grounded_urls is None else require_grounded_urls
        )

    async def generate(self, context: GenerationContext) -> RecommendationOutcome:
        cultural_available = bool(context.cultural and context.cultural.insights_available)
        trace: list[GenerationState] = []
        state = GenerationState.GATHERING
        prompt = ""
        payload: Optional[RecommendationPayload] = None
        tier: Optional[GenerationTier] = None
        rejected: list[str] = []
        outcome: Optional[RecommendationOutcome] = None

        while state != GenerationState.DONE:
            trace.append(state)

            if state == GenerationState.GATHERING:
                if context.ranked:
                    state = GenerationState.PROMPTING
                else:
                    outcome = RecommendationOutcome(
                        status=OutcomeStatus.NO_CANDIDATES,
                        reasoning="No repositories matched the request.",
                        cultural_insights_available=cultural_available,
                    )
                    state = GenerationState.DONE

            elif state == GenerationState.PROMPTING:
                prompt = build_prompt(context, settings.RECOMMENDATION_PROMPT_CANDIDATES)
                state = GenerationState.STRUCTURED if self._llm else GenerationState.HEURISTIC_FALLBACK

            elif state == GenerationState.STRUCTURED:
                try:
                    generated = await self._llm.generate_object(prompt, RecommendationPayload)
                    payload = self._ground(generated, context, rejected)
                    tier, state = GenerationTier.STRUCTURED, GenerationState.VALIDATING
                except Exception as exc:
                    self._log_tier_failure(state, exc)
                    state = GenerationState.TEXT_FALLBACK

            elif state == GenerationState.TEXT_FALLBACK:
                try:
                    text = await self._llm.generate_text(f"{prompt}\n\n{JSON_ONLY_INSTRUCTION}")
                    payload = self._ground(parse_json_response(text, RecommendationPayload), context, rejected)
                    tier, state = GenerationTier.TEXT_FALLBACK, GenerationState.VALIDATING
                except Exception as exc:
                    self._log_tier_failure(state, exc)
                    state = GenerationState.HEURISTIC_FALLBACK

            elif state == GenerationState.HEURISTIC_FALLBACK:
                payload = build_heuristic_payload(context, settings.RECOMMENDATION_HEURISTIC_COUNT)
                tier, state = GenerationTier.HEURISTIC_FALLBACK, GenerationState.VALIDATING

            elif state == GenerationState.VALIDATING:
                outcome = await self._validate(payload, tier, cultural_available, rejected)
                state = GenerationState.DONE

        trace.append(GenerationState.DONE)
        outcome.metadata["states"] = [item.value for item in trace]
        outcome.metadata["candidates_considered"] = len(context.ranked)
        return outcome

    def _ground(
        self,
        payload: RecommendationPayload,
        context: GenerationContext,
        rejected: list[str],
    ) -> RecommendationPayload:
        """Pin model output to the supplied candidates.

        Projects pointing outside the candidate list are dropped (and their
        URLs appended to ``rejected``) when grounding is required; kept
        projects get the candidate's canonical URL and missing star counts
        filled in.
        """

        by_url = {_normalize_url(candidate.url): candidate for candidate in context.grounding_candidates}
        kept: list[Recommendation] = []
        dropped: list[str] = []

        for project in payload.projects:
            candidate = by_url.get(_normalize_url(project.url))
            if candidate is None:
                if self._require_grounded:
                    dropped.append(project.url)
                    continue
                kept.append(project)
                continue
            update: dict[str, Any] = {"url": candidate.url}
            if project.stars is None:
                update["stars"] = candidate.stars
            kept.append(project.model_copy(update=update))

        if dropped:
            rejected.extend(dropped)
            logger.warning(
                "Dropped recommendations outside the candidate list",
                extra=sanitize_log_extra(urls=dropped),
            )
        if not kept:
            raise SchemaViolationError("Model proposed no repositories from the candidate list")
        return payload.model_copy(update={"projects": kept})

    async def _validate(
        self,
        payload: RecommendationPayload,
        tier: GenerationTier,
        cultural_available: bool,
        rejected: list[str],
    ) -> RecommendationOutcome:
        batch = await self._link_validator.validate_many(project.url for project in payload.projects)
        valid_urls = batch.valid_urls
        recommendations = [project for project in payload.projects if project.url in valid_urls]
        rejected = [*rejected, *(item.url for item in batch.invalid)]

        if not recommendations:
            logger.warning(
                "No recommendation survived link validation",
                extra=sanitize_log_extra(tier=tier.value, rejected=rejected),
            )
            return RecommendationOutcome(
                status=OutcomeStatus.NO_VALID_RECOMMENDATIONS,
                reasoning=payload.reasoning,
                user_analysis=payload.user_analysis,
                tier=tier,
                cultural_insights_available=cultural_available,
                rejected_urls=rejected,
            )

        logger.info(
            "Generated recommendations",
            extra=sanitize_log_extra(tier=tier.value, count=len(recommendations), rejected=len(rejected)),
        )
        return RecommendationOutcome(
            status=OutcomeStatus.OK,
            recommendations=recommendations,
            reasoning=payload.reasoning,
            user_analysis=payload.user_analysis,
            tier=tier,
            cultural_insights_available=cultural_available,
            rejected_urls=rejected,
        )

    @staticmethod
    def _log_tier_failure(state: GenerationState, exc: Exception) -> None:
        logger.warning(
            "Generation tier failed, falling back",
            extra=sanitize_log_extra(tier=_TIER_BY_STATE[state].value, error=str(exc) or type(exc).__name__),
        )


def build_prompt(context: GenerationContext, limit: int) -> str:
    """Grounding document built strictly from gathered data."""

    candidate_lines = []
    for index, scored in enumerate(context.ranked[:limit], 1):
        candidate = scored.candidate
        lines = [
            f"{index}. {candidate.full_name}",
            f"   URL: {candidate.url}",
            f"   Description: {candidate.description or 'n/a'}",
            f"   Language: {candidate.language or 'n/a'}",
            f"   Topics: {', '.join(candidate.topics[:10]) or 'none'}",
            f"   Stars: {candidate.stars}  Forks: {candidate.forks}  Open issues: {candidate.open_issues}",
            f"   Good first issues: {'yes' if candidate.has_good_first_issues else 'no'}"
            f"  Recently active: {'yes' if candidate.recently_active else 'no'}",
        ]
        if context.cultural and context.cultural.insights_available:
            matched = ", ".join(sorted(scored.matched_tags)) or "none"
            lines.append(f"   Cultural alignment: {scored.cultural_score:.2f} (matched: {matched})")
        candidate_lines.append("\n".join(lines))

    sections = [
        f'Developer request: "{context.query}"',
        f"Requested difficulty: {context.params.difficulty or 'any'}",
    ]
    if context.params.language:
        sections.append(f"Preferred language: {context.params.language}")

    profile = context.profile
    if profile:
        sections.append(
            "Developer profile:\n"
            f"- Experience level: {profile.experience_level.value}\n"
            f"- Primary languages: {', '.join(profile.primary_languages[:5]) or 'unknown'}\n"
            f"- Contribution frequency: {profile.contribution_frequency.value}\n"
            f"- Frameworks: {', '.join(profile.frameworks) or 'none'}\n"
            f"- Learning opportunities: {', '.join(profile.learning_opportunities) or 'none'}"
        )

    cultural = context.cultural
    if cultural and cultural.insights_available:
        related = ", ".join(interest.tag for interest in cultural.related_interests[:10]) or "none"
        demographics = "; ".join(
            f"{item.age_bracket} ({item.gender_skew}, {item.affinity_score:.2f})" for item in cultural.demographics[:3]
        ) or "none"
        sections.append(
            "Cultural signals:\n"
            f"- Interest tags: {', '.join(sorted(cultural.tags)[:15]) or 'none'}\n"
            f"- Related interests: {related}\n"
            f"- Demographic affinity: {demographics}"
        )

    sections.append("Candidate repositories:\n" + "\n\n".join(candidate_lines))

    if context.beginner_friendly:
        options = [
            f"{index}. {option.candidate.full_name} ({option.candidate.stars} stars, "
            f"beginner score {option.beginner_friendly_score})\n"
            f"   {option.candidate.description or 'No description'}\n"
            f"   URL: {option.candidate.url}"
            for index, option in enumerate(context.beginner_friendly, 1)
        ]
        sections.append("Beginner-friendly options:\n" + "\n".join(options))

    sections.append(
        "Select the best 3 to 5 repositories for this developer ONLY from the candidate list above. "
        "Never invent repositories and copy each URL exactly as given.\n"
        "Respond with a JSON object:\n"
        + json.dumps(
            {
                "projects": [
                    {
                        "name": "owner/repo",
                        "description": "...",
                        "url": "https://github.com/owner/repo",
                        "languages": ["..."],
                        "topics": ["..."],
                        "stars": 0,
                        "difficulty": "beginner | intermediate | advanced",
                        "explanation": "why this fits the developer",
                        "contribution_types": ["code", "documentation"],
                        "contribution_score": 0,
                        "recommendation_reason": "...",
                    }
                ],
                "reasoning": "overall reasoning",
                "user_analysis": {
                    "experience_level": "...",
                    "primary_languages": ["..."],
                    "suggested_focus_areas": ["..."],
                },
            },
            indent=2,
        )
    )
    return "\n\n".join(sections)


def build_heuristic_payload(context: GenerationContext, count: int) -> RecommendationPayload:
    """Deterministic payload built straight from the ranked candidates, no model involved."""

    difficulty = context.params.difficulty if context.params.difficulty in DIFFICULTY_TIERS else DEFAULT_DIFFICULTY
    projects: list[Recommendation] = []
    for index, scored in enumerate(context.ranked[:count]):
        candidate = scored.candidate
        reason = f'Top search match for "{context.query}"'
        if scored.matched_tags:
            reason += f" sharing interests in {', '.join(sorted(scored.matched_tags)[:3])}"
        projects.append(
            Recommendation(
                name=candidate.full_name,
                description=candidate.description or "No description provided.",
                url=candidate.url,
                languages=[candidate.language or "Mixed"],
                topics=list(candidate.topics[:3]),
                stars=candidate.stars,
                difficulty=difficulty,
                explanation=(
                    "This project matches your query and uses "
                    f"{candidate.language or 'relevant'} technology."
                ),
                contribution_types=["code", "documentation"],
                contribution_score=HEURISTIC_BASE_SCORE + HEURISTIC_SCORE_STEP * index,
                recommendation_reason=reason,
            )
        )

    profile = context.profile
    if profile:
        experience = profile.experience_level.value
        languages = profile.primary_languages[:3]
    else:
        experience = DEFAULT_DIFFICULTY
        languages = [context.params.language] if context.params.language else []

    return RecommendationPayload(
        projects=projects,
        reasoning=(
            f"Selected the top {len(projects)} matching repositories from search results "
            "ranked by cultural alignment and popularity."
        ),
        user_analysis=UserAnalysis(
            experience_level=experience,
            primary_languages=languages,
            suggested_focus_areas=list(context.technologies) or [DEFAULT_FOCUS_AREA],
        ),
    )


def _normalize_url(url: str) -> str:
    return (url or "").strip().rstrip("/").lower()


def rank_without_scores(candidates: Sequence[RepositoryCandidate]) -> list[ScoredProject]:
    """Wrap candidates in search order when cultural scoring is disabled."""

    return [
        ScoredProject(candidate=candidate, cultural_score=0.0, project_tags=frozenset(), matched_tags=frozenset())
        for candidate in candidates
    ]
