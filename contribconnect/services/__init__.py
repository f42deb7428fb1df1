"""Pipeline services"""

from contribconnect.services.cultural_insights import CulturalInsightGateway
from contribconnect.services.fusion_scorer import FusionScorer
from contribconnect.services.link_validator import LinkValidation, LinkValidator
from contribconnect.services.recommendation_generator import (
    GenerationContext,
    GenerationState,
    RecommendationGenerator,
)
from contribconnect.services.signal_gateway import SignalGateway

__all__ = [
    "CulturalInsightGateway",
    "FusionScorer",
    "GenerationContext",
    "GenerationState",
    "LinkValidation",
    "LinkValidator",
    "RecommendationGenerator",
    "SignalGateway",
]
