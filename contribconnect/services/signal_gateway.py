"""Technical signal gathering from GitHub: repository search and profile analysis."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Optional

from dateutil import parser as date_parser

from contribconnect.clients.contracts import FetchState
from contribconnect.clients.github import GitHubClient
from contribconnect.clients.log_sanitizer import sanitize_log_extra
from contribconnect.config.settings import settings
from contribconnect.errors import ProfileNotFoundError, UpstreamUnavailableError
from contribconnect.models.profile import ContributionFrequency, ExperienceLevel, TechnicalProfile
from contribconnect.models.repository import BeginnerFriendlyRepo, RepositoryCandidate, SearchParams, SearchResult

logger = logging.getLogger(__name__)

_FILLER_PATTERNS = (
    re.compile(r"\b(?:find me|show me|recommend|projects for|based on)\b", re.IGNORECASE),
    re.compile(r"\b(?:your profile|your experience|your background)\b", re.IGNORECASE),
)
_STOPWORDS = frozenset({"the", "and", "for", "with", "that", "this", "from", "your", "you"})
_UNSAFE_TOPIC = re.compile(r"[:\"<>]")
_URL_LIKE = re.compile(r"^(?:https?://|www\.)", re.IGNORECASE)
MAX_QUERY_KEYWORDS = 2
MAX_QUERY_TOPICS = 2

KNOWN_FRAMEWORKS = (
    "react", "vue", "angular", "express", "django", "flask", "spring", "rails",
    "nextjs", "nuxt", "svelte", "fastapi", "nestjs", "laravel",
)
KNOWN_DOMAINS = (
    "web", "mobile", "ai", "ml", "blockchain", "iot", "game", "cli", "defi",
    "frontend", "backend", "fullstack", "api", "microservices",
)
LEARNING_LANGUAGES = ("typescript", "rust", "go", "python")
MAX_LEARNING_OPPORTUNITIES = 3
DEFAULT_LANGUAGE_LABEL = "Mixed"
BEGINNER_FRIENDLY_QUERY = "good-first-issues:>3 help-wanted-issues:>1 stars:>50 stars:<5000"


class SignalGateway:
    """Fetches requester profiles and candidate repositories.

    ``search`` is best-effort and never raises for upstream trouble: it tries
    the constructed query, then one simplified query, then returns an empty
    result with ``error`` set. ``fetch_profile`` surfaces failures as typed
    errors so the caller can decide to continue without a profile.
    """

    def __init__(
        self,
        client: Optional[GitHubClient] = None,
        *,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client or GitHubClient()
        self._now = now_provider or (lambda: datetime.now(UTC))

    async def search(self, params: SearchParams) -> SearchResult:
        query = self.build_search_query(params)
        sort = "help-wanted-issues" if params.difficulty == "beginner" else "stars"
        filters = _filters_applied(params)

        logger.debug("Searching repositories", extra=sanitize_log_extra(query=query, sort=sort))
        primary = await self._client.search_repositories(
            query,
            sort=sort,
            order="desc",
            per_page=settings.GITHUB_SEARCH_PER_PAGE,
        )
        if primary.ok:
            return self._to_result(query, primary.data, filters=filters)

        fallback_query = self.build_fallback_query(params)
        logger.warning(
            "Primary repository search failed, retrying with simplified query",
            extra=sanitize_log_extra(
                query=query,
                fallback_query=fallback_query,
                status_code=primary.status_code,
                error=primary.error,
            ),
        )
        fallback = await self._client.search_repositories(
            fallback_query,
            sort="stars",
            order="desc",
            per_page=settings.GITHUB_FALLBACK_PER_PAGE,
        )
        if fallback.ok:
            result = self._to_result(fallback_query, fallback.data, filters=filters)
            result.fallback_used = True
            return result

        logger.warning(
            "Repository search unavailable, returning empty result",
            extra=sanitize_log_extra(query=fallback_query, status_code=fallback.status_code, error=fallback.error),
        )
        return SearchResult.empty(
            query,
            error=fallback.error or primary.error or "search failed",
            filters_applied=filters,
        )

    def build_search_query(self, params: SearchParams) -> str:
        """Turn a conversational request into GitHub search qualifiers."""

        parts: list[str] = list(extract_query_keywords(params.query))

        if params.language:
            parts.append(f"language:{params.language}")

        if params.difficulty == "beginner":
            parts.append("good-first-issues:>1")
        elif params.difficulty == "advanced":
            parts.append("stars:>1000")
        else:
            parts.append("stars:>10")

        if params.has_good_first_issues:
            parts.append("good-first-issues:>0")

        if params.active_recently:
            since = self._now() - timedelta(days=settings.GITHUB_RECENT_ACTIVITY_DAYS)
            parts.append(f"pushed:>{since.date().isoformat()}")

        if params.min_stars is not None:
            parts.append(f"stars:>{params.min_stars}")
        if params.max_stars is not None:
            parts.append(f"stars:<{params.max_stars}")

        safe_topics = [topic for topic in params.topics if topic and not _UNSAFE_TOPIC.search(topic)]
        parts.extend(f"topic:{topic}" for topic in safe_topics[:MAX_QUERY_TOPICS])

        parts.append("is:public archived:false")
        query = " ".join(part for part in parts if part).strip()

        if len(query) > settings.GITHUB_SEARCH_QUERY_MAX_LENGTH:
            logger.debug("Search query too long, using minimal query", extra={"length": len(query)})
            if params.language:
                return f"language:{params.language} is:public archived:false stars:>10"
            return "is:public archived:false stars:>50"
        return query

    @staticmethod
    def build_fallback_query(params: SearchParams) -> str:
        if params.language:
            return f"language:{params.language} stars:>10 is:public"
        return "stars:>100 is:public"

    async def find_beginner_friendly(
        self,
        *,
        language: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> list[BeginnerFriendlyRepo]:
        """Mid-sized repositories with plenty of newcomer issues.

        Best-effort: an upstream failure yields an empty list.
        """

        query = BEGINNER_FRIENDLY_QUERY
        if language:
            query += f" language:{language}"
        if topic and not _UNSAFE_TOPIC.search(topic):
            query += f" topic:{topic}"

        response = await self._client.search_repositories(
            query,
            sort="help-wanted-issues",
            order="desc",
            per_page=settings.GITHUB_BEGINNER_PER_PAGE,
        )
        if not response.ok:
            logger.warning(
                "Beginner-friendly search failed",
                extra=sanitize_log_extra(query=query, status_code=response.status_code, error=response.error),
            )
            return []

        items = (response.data or {}).get("items") or []
        candidates = [candidate for candidate in (self.map_candidate(item) for item in items) if candidate]
        return [
            BeginnerFriendlyRepo(candidate=candidate, beginner_friendly_score=beginner_friendly_score(candidate))
            for candidate in candidates[: settings.GITHUB_BEGINNER_PER_PAGE]
        ]

    async def fetch_profile(self, username: str) -> TechnicalProfile:
        """Analyse a GitHub user from their account and most recently updated repositories."""

        user = await self._client.get_user(username)
        if user.state == FetchState.NOT_FOUND:
            raise ProfileNotFoundError(username)
        if user.state != FetchState.OK or not isinstance(user.data, dict):
            raise UpstreamUnavailableError("github", user.error or "profile fetch failed", status_code=user.status_code)

        repos = await self._client.list_user_repos(
            username,
            per_page=settings.GITHUB_PROFILE_REPOS_PER_PAGE,
            sort="updated",
        )
        if repos.state == FetchState.NOT_FOUND:
            raise ProfileNotFoundError(username)
        if not repos.ok:
            raise UpstreamUnavailableError("github", repos.error or "repository list failed", status_code=repos.status_code)

        repo_payloads = [repo for repo in (repos.data or []) if isinstance(repo, dict)]
        return self._analyze_profile(username, user.data, repo_payloads)

    def _analyze_profile(
        self,
        username: str,
        user: dict[str, Any],
        repos: list[dict[str, Any]],
    ) -> TechnicalProfile:
        now = self._now()

        languages: Counter[str] = Counter()
        topics: list[str] = []
        for repo in repos:
            language = repo.get("language")
            if isinstance(language, str) and language:
                languages[language.lower()] += 1
            for topic in repo.get("topics") or []:
                if isinstance(topic, str) and topic not in topics:
                    topics.append(topic)

        public_repos = _to_int(user.get("public_repos"))
        followers = _to_int(user.get("followers"))
        member_since = _parse_datetime(user.get("created_at"))
        account_years = (now - member_since).days / 365 if member_since else 0.0

        if public_repos > 50 or followers > 100 or account_years > 3:
            experience = ExperienceLevel.EXPERIENCED
        elif public_repos > 10 or followers > 20 or account_years > 1:
            experience = ExperienceLevel.INTERMEDIATE
        else:
            experience = ExperienceLevel.BEGINNER

        activity_cutoff = now - timedelta(days=settings.GITHUB_PROFILE_ACTIVITY_DAYS)
        recent = sum(
            1
            for repo in repos
            if (_parse_datetime(repo.get("updated_at")) or datetime.min.replace(tzinfo=UTC)) > activity_cutoff
        )
        if recent > 10:
            frequency = ContributionFrequency.VERY_ACTIVE
        elif recent > 5:
            frequency = ContributionFrequency.ACTIVE
        elif recent > 2:
            frequency = ContributionFrequency.MODERATE
        else:
            frequency = ContributionFrequency.LOW

        lowered_topics = {topic.lower() for topic in topics}
        frameworks = tuple(name for name in KNOWN_FRAMEWORKS if name in lowered_topics)
        domains = tuple(name for name in KNOWN_DOMAINS if name in lowered_topics)
        project_types = ("creator", "contributor") if any(repo.get("fork") for repo in repos) else ("creator",)
        learning = tuple(name for name in LEARNING_LANGUAGES if name not in languages)[:MAX_LEARNING_OPPORTUNITIES]

        logger.info(
            "Analyzed GitHub profile",
            extra=sanitize_log_extra(
                username=username,
                repos=len(repos),
                experience=experience.value,
                frequency=frequency.value,
            ),
        )

        return TechnicalProfile(
            username=username,
            languages=dict(languages),
            experience_level=experience,
            contribution_frequency=frequency,
            name=user.get("name"),
            bio=user.get("bio"),
            location=user.get("location"),
            company=user.get("company"),
            public_repos=public_repos,
            followers=followers,
            member_since=member_since,
            topics=tuple(topics),
            frameworks=frameworks,
            domains=domains,
            project_types=project_types,
            learning_opportunities=learning,
        )

    def _to_result(self, query: str, payload: Optional[dict[str, Any]], *, filters: dict[str, Any]) -> SearchResult:
        payload = payload or {}
        items = payload.get("items") or []
        candidates = [candidate for candidate in (self.map_candidate(item) for item in items) if candidate]
        return SearchResult(
            query=query,
            total_found=_to_int(payload.get("total_count"), default=len(candidates)),
            candidates=candidates,
            filters_applied=filters,
        )

    def map_candidate(self, item: dict[str, Any]) -> Optional[RepositoryCandidate]:
        full_name = str(item.get("full_name") or "").strip()
        if "/" not in full_name:
            return None

        open_issues = _to_int(item.get("open_issues_count"))
        pushed_at = _parse_datetime(item.get("pushed_at"))
        recent_cutoff = self._now() - timedelta(days=settings.GITHUB_RECENT_ACTIVITY_DAYS)

        return RepositoryCandidate(
            full_name=full_name,
            url=str(item.get("html_url") or f"https://{settings.GITHUB_WEB_HOST}/{full_name}"),
            description=str(item.get("description") or ""),
            language=item.get("language") or DEFAULT_LANGUAGE_LABEL,
            topics=tuple(topic for topic in (item.get("topics") or []) if isinstance(topic, str)),
            stars=_to_int(item.get("stargazers_count")),
            forks=_to_int(item.get("forks_count")),
            open_issues=open_issues,
            pushed_at=pushed_at,
            created_at=_parse_datetime(item.get("created_at")),
            has_good_first_issues=open_issues > 0,
            has_help_wanted=open_issues > 0,
            recently_active=bool(pushed_at and pushed_at > recent_cutoff),
        )


def extract_query_keywords(query: str) -> list[str]:
    """Up to two meaningful keywords from a conversational query."""

    cleaned = query or ""
    for pattern in _FILLER_PATTERNS:
        cleaned = pattern.sub(" ", cleaned)

    keywords: list[str] = []
    for word in cleaned.split():
        if len(word) <= 2 or "." in word:
            continue
        if word.lower() in _STOPWORDS or _URL_LIKE.match(word):
            continue
        keywords.append(word)
        if len(keywords) == MAX_QUERY_KEYWORDS:
            break
    return keywords


def beginner_friendly_score(candidate: RepositoryCandidate) -> int:
    score = 25
    if candidate.open_issues > 5:
        score += 25
    if 100 < candidate.stars < 1000:
        score += 25
    if candidate.recently_active:
        score += 25
    return min(score, 100)


def _filters_applied(params: SearchParams) -> dict[str, Any]:
    return {
        "language": params.language,
        "difficulty": params.difficulty,
        "topics": list(params.topics),
        "min_stars": params.min_stars,
        "max_stars": params.max_stars,
        "active_recently": params.active_recently,
        "has_good_first_issues": params.has_good_first_issues,
    }


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = date_parser.isoparse(value)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
