"""Recommendation pipeline entry point."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence

from contribconnect.clients.github import GitHubClient
from contribconnect.clients.log_sanitizer import sanitize_log_extra
from contribconnect.clients.qloo import QlooClient
from contribconnect.config.settings import settings
from contribconnect.errors import InvalidInputError
from contribconnect.models.cultural import CulturalSignal, CulturalTag
from contribconnect.models.profile import ExperienceLevel, TechnicalProfile
from contribconnect.models.recommendation import OutcomeStatus, RecommendationOutcome
from contribconnect.models.repository import DIFFICULTY_TIERS, BeginnerFriendlyRepo, SearchParams, SearchResult
from contribconnect.services.cultural_insights import ALL_CALLS, CulturalInsightGateway
from contribconnect.services.culture_mapper import build_cultural_profile, extract_tech_from_query
from contribconnect.services.fusion_scorer import FusionScorer
from contribconnect.services.link_validator import LinkValidator
from contribconnect.services.llm import LLMService
from contribconnect.services.recommendation_generator import (
    GenerationContext,
    GenerativeModel,
    RecommendationGenerator,
    rank_without_scores,
)
from contribconnect.services.settle import settle_all
from contribconnect.services.signal_gateway import SignalGateway

logger = logging.getLogger(__name__)

BRANCH_SEARCH = "search"
BRANCH_ENRICHMENT = "enrichment"
BRANCH_BEGINNER = "beginner_friendly"

_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
_FILTER_ALIASES = {
    "language": "language",
    "difficulty": "difficulty",
    "topics": "topics",
    "min_stars": "min_stars",
    "minStars": "min_stars",
    "max_stars": "max_stars",
    "maxStars": "max_stars",
    "active_recently": "active_recently",
    "activeRecently": "active_recently",
    "has_good_first_issues": "has_good_first_issues",
    "hasGoodFirstIssues": "has_good_first_issues",
}


class RepositorySignals(Protocol):
    async def search(self, params: SearchParams) -> SearchResult: ...

    async def fetch_profile(self, username: str) -> TechnicalProfile: ...

    async def find_beginner_friendly(
        self,
        *,
        language: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> list[BeginnerFriendlyRepo]: ...


class CulturalSignals(Protocol):
    async def gather(self, tags: Iterable[CulturalTag], categories: Sequence[str]) -> CulturalSignal: ...


class RecommendationOrchestrator:
    """Gathers signals concurrently, scores candidates and hands off to generation.

    Collaborators are injectable; defaults are built from ``settings`` and
    share one GitHub client between search, profile analysis and link
    validation.
    """

    def __init__(
        self,
        *,
        github_client: Optional[GitHubClient] = None,
        qloo_client: Optional[QlooClient] = None,
        signal_gateway: RepositorySignals | None = None,
        cultural_gateway: CulturalSignals | None = None,
        scorer: FusionScorer | None = None,
        link_validator: LinkValidator | None = None,
        llm: GenerativeModel | None = None,
        llm_factory: Callable[[], GenerativeModel] = LLMService,
    ) -> None:
        self._github_client = github_client or GitHubClient()
        self._qloo_client = qloo_client or QlooClient()
        self._signal_gateway = signal_gateway
        self._cultural_gateway = cultural_gateway
        self._scorer = scorer or FusionScorer()
        self._link_validator = link_validator
        self._llm = llm
        self._llm_factory = llm_factory
        self._llm_resolved = llm is not None

    async def __aenter__(self) -> "RecommendationOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._github_client.aclose()
        await self._qloo_client.aclose()

    async def generate_recommendations(
        self,
        query: str,
        technical_filters: Optional[Mapping[str, Any]] = None,
        *,
        use_cultural_insights: bool = True,
        github_username: Optional[str] = None,
    ) -> RecommendationOutcome:
        """Recommend repositories for ``query``.

        Raises ``InvalidInputError`` for malformed parameters. Every other
        condition is reported through the outcome status.
        """

        params = parse_search_params(query, technical_filters)
        username = validate_username(github_username)
        technologies = extract_tech_from_query(params.query)

        logger.info(
            "Generating recommendations",
            extra=sanitize_log_extra(
                query=params.query,
                language=params.language,
                difficulty=params.difficulty,
                use_cultural_insights=use_cultural_insights,
                github_username=username,
            ),
        )

        branches = {
            BRANCH_SEARCH: self.signal_gateway.search(params),
            BRANCH_ENRICHMENT: self._enrich(params, technologies, username, use_cultural_insights),
        }
        if params.difficulty == "beginner":
            branches[BRANCH_BEGINNER] = self._beginner_options(params, technologies)
        settled = await settle_all(branches)

        if settled[BRANCH_SEARCH].ok:
            search: SearchResult = settled[BRANCH_SEARCH].value
        else:
            logger.error(
                "Repository search raised unexpectedly",
                extra=sanitize_log_extra(error=str(settled[BRANCH_SEARCH].error)),
            )
            search = SearchResult.empty(params.query, error=str(settled[BRANCH_SEARCH].error))

        profile: Optional[TechnicalProfile] = None
        cultural: Optional[CulturalSignal] = None
        if settled[BRANCH_ENRICHMENT].ok:
            profile, cultural = settled[BRANCH_ENRICHMENT].value
        else:
            logger.warning(
                "Signal enrichment failed",
                extra=sanitize_log_extra(error=str(settled[BRANCH_ENRICHMENT].error)),
            )
            if use_cultural_insights:
                cultural = CulturalSignal.unavailable(failed_calls=list(ALL_CALLS))

        beginner_friendly: list[BeginnerFriendlyRepo] = []
        if BRANCH_BEGINNER in settled:
            beginner_friendly = settled[BRANCH_BEGINNER].value or []
        elif not search.upstream_failed and profile is not None and profile.experience_level == ExperienceLevel.BEGINNER:
            beginner_friendly = await self._beginner_options(params, technologies)

        metadata = {
            "search_query": search.query,
            "total_found": search.total_found,
            "search_fallback_used": search.fallback_used,
            "filters_applied": dict(search.filters_applied),
            "profile_available": profile is not None,
            "cultural_failed_calls": list(cultural.failed_calls) if cultural else [],
            "beginner_friendly_found": len(beginner_friendly),
        }

        if search.upstream_failed:
            return RecommendationOutcome(
                status=OutcomeStatus.UPSTREAM_UNAVAILABLE,
                reasoning="Repository search is currently unavailable.",
                cultural_insights_available=bool(cultural and cultural.insights_available),
                metadata={**metadata, "error": search.error},
            )

        if cultural is not None and cultural.insights_available:
            ranked = self._scorer.score(search.candidates, cultural.tags, cultural.related_tags)
        else:
            ranked = rank_without_scores(search.candidates)

        generator = RecommendationGenerator(self._resolve_llm(), self.link_validator)
        outcome = await generator.generate(
            GenerationContext(
                query=params.query,
                params=params,
                ranked=ranked,
                profile=profile,
                cultural=cultural,
                technologies=technologies,
                beginner_friendly=beginner_friendly,
            )
        )
        outcome.metadata.update(metadata)
        return outcome

    async def _enrich(
        self,
        params: SearchParams,
        technologies: list[str],
        username: Optional[str],
        use_cultural_insights: bool,
    ) -> tuple[Optional[TechnicalProfile], Optional[CulturalSignal]]:
        """Optional profile analysis followed by the cultural lookups.

        A failed profile fetch is absorbed; the cultural side then works from
        the request alone.
        """

        profile: Optional[TechnicalProfile] = None
        if username:
            try:
                profile = await self.signal_gateway.fetch_profile(username)
            except Exception as exc:
                logger.warning(
                    "Profile analysis failed, continuing without profile",
                    extra=sanitize_log_extra(github_username=username, error=str(exc)),
                )

        if not use_cultural_insights:
            return profile, None

        languages = list(profile.primary_languages) if profile else []
        if params.language and params.language.lower() not in languages:
            languages.insert(0, params.language)
        cultural_profile = build_cultural_profile(
            languages=languages,
            topics=[*params.topics, *(profile.topics if profile else ())],
            bio=profile.bio if profile else None,
            location=profile.location if profile else None,
            extra_tokens=[*technologies, *(profile.frameworks if profile else ()), *(profile.domains if profile else ())],
        )
        try:
            signal = await self.cultural_gateway.gather(cultural_profile.tags, cultural_profile.insight_categories)
        except Exception as exc:
            logger.warning(
                "Cultural insights unavailable",
                extra=sanitize_log_extra(error=str(exc) or type(exc).__name__),
            )
            signal = CulturalSignal.unavailable(failed_calls=list(ALL_CALLS))
        return profile, signal

    async def _beginner_options(self, params: SearchParams, technologies: list[str]) -> list[BeginnerFriendlyRepo]:
        language = params.language or (technologies[0] if technologies else None)
        try:
            return await self.signal_gateway.find_beginner_friendly(language=language)
        except Exception as exc:
            logger.warning(
                "Beginner-friendly search failed, continuing without it",
                extra=sanitize_log_extra(language=language, error=str(exc) or type(exc).__name__),
            )
            return []

    @property
    def signal_gateway(self) -> RepositorySignals:
        if self._signal_gateway is None:
            self._signal_gateway = SignalGateway(self._github_client)
        return self._signal_gateway

    @property
    def cultural_gateway(self) -> CulturalSignals:
        if self._cultural_gateway is None:
            self._cultural_gateway = CulturalInsightGateway(self._qloo_client)
        return self._cultural_gateway

    @property
    def link_validator(self) -> LinkValidator:
        if self._link_validator is None:
            self._link_validator = LinkValidator(self._github_client)
        return self._link_validator

    def _resolve_llm(self) -> GenerativeModel | None:
        if not self._llm_resolved:
            self._llm_resolved = True
            try:
                self._llm = self._llm_factory()
            except ValueError as exc:
                logger.warning(f"LLM provider unavailable, using heuristic recommendations: {exc}")
                self._llm = None
        return self._llm


def parse_search_params(query: Any, technical_filters: Optional[Mapping[str, Any]]) -> SearchParams:
    """Validate request input into ``SearchParams``; raises ``InvalidInputError``."""

    if not isinstance(query, str) or not query.strip():
        raise InvalidInputError("query must be a non-empty string")
    query = query.strip()
    if len(query) > settings.QUERY_MAX_LENGTH:
        raise InvalidInputError(f"query must be at most {settings.QUERY_MAX_LENGTH} characters")

    if technical_filters is None:
        technical_filters = {}
    if not isinstance(technical_filters, Mapping):
        raise InvalidInputError("technical_filters must be an object")

    values: dict[str, Any] = {}
    for key, value in technical_filters.items():
        field_name = _FILTER_ALIASES.get(key)
        if field_name is None:
            raise InvalidInputError(f"Unknown technical filter: {key}")
        if value is not None:
            values[field_name] = value

    language = values.get("language")
    if language is not None and (not isinstance(language, str) or not language.strip()):
        raise InvalidInputError("language must be a non-empty string")

    difficulty = values.get("difficulty")
    if difficulty is not None:
        if not isinstance(difficulty, str) or difficulty.lower() not in DIFFICULTY_TIERS:
            raise InvalidInputError(f"difficulty must be one of {', '.join(DIFFICULTY_TIERS)}")
        difficulty = difficulty.lower()

    topics = values.get("topics", ())
    if not isinstance(topics, (list, tuple)) or not all(isinstance(topic, str) for topic in topics):
        raise InvalidInputError("topics must be a list of strings")

    min_stars = _non_negative_int(values.get("min_stars"), "min_stars")
    max_stars = _non_negative_int(values.get("max_stars"), "max_stars")
    if min_stars is not None and max_stars is not None and min_stars > max_stars:
        raise InvalidInputError("min_stars must not exceed max_stars")

    return SearchParams(
        query=query,
        language=language.strip() if language else None,
        difficulty=difficulty,
        topics=tuple(topic.strip() for topic in topics if topic.strip()),
        min_stars=min_stars,
        max_stars=max_stars,
        active_recently=_flag(values.get("active_recently"), "active_recently"),
        has_good_first_issues=_flag(values.get("has_good_first_issues"), "has_good_first_issues"),
    )


def validate_username(username: Optional[str]) -> Optional[str]:
    if username is None:
        return None
    if not isinstance(username, str) or not _USERNAME_PATTERN.match(username.strip()):
        raise InvalidInputError("github_username is not a valid GitHub login")
    return username.strip()


def _non_negative_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInputError(f"{name} must be a non-negative integer")
    return value


def _flag(value: Any, name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidInputError(f"{name} must be a boolean")
    return value
