"""Generation schema and pipeline outcome types."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Difficulty = Literal["beginner", "intermediate", "advanced"]


class Recommendation(BaseModel):
    """One recommended project as returned to the application layer."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    url: str = Field(validation_alias=AliasChoices("url", "githubUrl", "github_url"))
    languages: list[str]
    topics: list[str]
    stars: Optional[int] = None
    difficulty: Difficulty
    explanation: str
    contribution_types: list[str] = Field(
        validation_alias=AliasChoices("contribution_types", "contributionTypes"),
    )
    contribution_score: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        validation_alias=AliasChoices("contribution_score", "contributionScore", "score"),
    )
    recommendation_reason: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("recommendation_reason", "recommendationReason"),
    )


class UserAnalysis(BaseModel):
    experience_level: str
    primary_languages: list[str]
    suggested_focus_areas: list[str]


class RecommendationPayload(BaseModel):
    """Object the generative model must produce."""

    projects: list[Recommendation]
    reasoning: str
    user_analysis: UserAnalysis


class GenerationTier(str, enum.Enum):
    """Which generation strategy produced the payload"""
    STRUCTURED = "structured"
    TEXT_FALLBACK = "text_fallback"
    HEURISTIC_FALLBACK = "heuristic_fallback"


class OutcomeStatus(str, enum.Enum):
    OK = "ok"
    NO_VALID_RECOMMENDATIONS = "no_valid_recommendations"
    NO_CANDIDATES = "no_candidates"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


@dataclass(slots=True)
class RecommendationOutcome:
    """Result of one pipeline invocation.

    ``recommendations`` is non-empty exactly when ``status`` is ``OK``.
    """

    status: OutcomeStatus
    recommendations: list[Recommendation] = field(default_factory=list)
    reasoning: str = ""
    user_analysis: Optional[UserAnalysis] = None
    tier: Optional[GenerationTier] = None
    cultural_insights_available: bool = False
    rejected_urls: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "recommendations": [item.model_dump() for item in self.recommendations],
            "reasoning": self.reasoning,
            "user_analysis": self.user_analysis.model_dump() if self.user_analysis else None,
            "tier": self.tier.value if self.tier else None,
            "cultural_insights_available": self.cultural_insights_available,
            "rejected_urls": list(self.rejected_urls),
            "metadata": dict(self.metadata),
        }
