"""Pipeline value objects"""

from contribconnect.models.cultural import (
    CulturalSignal,
    CulturalTag,
    DemographicAffinity,
    RelatedInterest,
    ScoredProject,
)
from contribconnect.models.profile import ContributionFrequency, ExperienceLevel, TechnicalProfile
from contribconnect.models.recommendation import (
    GenerationTier,
    OutcomeStatus,
    Recommendation,
    RecommendationOutcome,
    RecommendationPayload,
    UserAnalysis,
)
from contribconnect.models.repository import RepositoryCandidate, SearchParams, SearchResult

__all__ = [
    "CulturalSignal",
    "CulturalTag",
    "DemographicAffinity",
    "RelatedInterest",
    "ScoredProject",
    "ContributionFrequency",
    "ExperienceLevel",
    "TechnicalProfile",
    "GenerationTier",
    "OutcomeStatus",
    "Recommendation",
    "RecommendationOutcome",
    "RecommendationPayload",
    "UserAnalysis",
    "RepositoryCandidate",
    "SearchParams",
    "SearchResult",
]
