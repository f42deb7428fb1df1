"""Repository candidates and search parameters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

DIFFICULTY_TIERS = ("beginner", "intermediate", "advanced")


@dataclass(frozen=True, slots=True)
class SearchParams:
    """Search request for the code-hosting signal source."""

    query: str = ""
    language: Optional[str] = None
    difficulty: Optional[str] = None
    topics: tuple[str, ...] = ()
    min_stars: Optional[int] = None
    max_stars: Optional[int] = None
    active_recently: bool = False
    has_good_first_issues: bool = False


@dataclass(frozen=True, slots=True)
class RepositoryCandidate:
    """Repository considered for recommendation before cultural scoring."""

    full_name: str
    url: str
    description: str = ""
    language: Optional[str] = None
    topics: tuple[str, ...] = ()
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    pushed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    has_good_first_issues: bool = False
    has_help_wanted: bool = False
    recently_active: bool = False


@dataclass(frozen=True, slots=True)
class BeginnerFriendlyRepo:
    """Candidate from the newcomer-oriented search with its 25-100 friendliness score."""

    candidate: RepositoryCandidate
    beginner_friendly_score: int


@dataclass(slots=True)
class SearchResult:
    """Best-effort search outcome. ``error`` is set only when every query tier failed."""

    query: str
    total_found: int
    candidates: list[RepositoryCandidate] = field(default_factory=list)
    fallback_used: bool = False
    filters_applied: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def upstream_failed(self) -> bool:
        return self.error is not None

    @classmethod
    def empty(
        cls,
        query: str,
        *,
        error: Optional[str] = None,
        filters_applied: Optional[dict[str, Any]] = None,
    ) -> "SearchResult":
        return cls(query=query, total_found=0, candidates=[], filters_applied=dict(filters_applied or {}), error=error)
