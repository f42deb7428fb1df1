"""Cultural signal value objects."""

from __future__ import annotations

from dataclasses import dataclass, field

from contribconnect.models.repository import RepositoryCandidate

# Cultural tags are plain normalized strings, e.g. "data-science" or "tech-elixir".
CulturalTag = str


@dataclass(frozen=True, slots=True)
class DemographicAffinity:
    """One demographic bucket and how strongly it leans toward the tags."""

    age_bracket: str
    gender_skew: str
    affinity_score: float  # Always within [0, 1]
    entity_id: str | None = None


@dataclass(frozen=True, slots=True)
class RelatedInterest:
    """Related tag surfaced by the taste graph."""

    tag: CulturalTag
    popularity: float = 0.0


@dataclass(slots=True)
class CulturalSignal:
    """Requester tags plus whatever taste-graph enrichment succeeded."""

    tags: frozenset[CulturalTag] = frozenset()
    demographics: list[DemographicAffinity] = field(default_factory=list)
    related_interests: list[RelatedInterest] = field(default_factory=list)
    insights_available: bool = False
    failed_calls: list[str] = field(default_factory=list)

    @property
    def related_tags(self) -> frozenset[CulturalTag]:
        return frozenset(interest.tag for interest in self.related_interests)

    @classmethod
    def unavailable(cls, *, failed_calls: list[str] | None = None) -> "CulturalSignal":
        return cls(insights_available=False, failed_calls=list(failed_calls or []))


@dataclass(frozen=True, slots=True)
class ScoredProject:
    """Candidate with its cultural alignment.

    ``cultural_score == len(matched_tags) / max(len(project_tags), 1)``
    """

    candidate: RepositoryCandidate
    cultural_score: float
    project_tags: frozenset[CulturalTag]
    matched_tags: frozenset[CulturalTag]
