"""Cultural signal gathering from the Qloo taste graph."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional, Sequence

from contribconnect.clients.contracts import FetchState, InsightsContract
from contribconnect.clients.log_sanitizer import sanitize_log_extra
from contribconnect.clients.qloo import FILTER_TAG, QlooClient
from contribconnect.config.settings import settings
from contribconnect.errors import UpstreamUnavailableError
from contribconnect.models.cultural import CulturalSignal, CulturalTag, DemographicAffinity, RelatedInterest
from contribconnect.services.settle import settle_all

logger = logging.getLogger(__name__)

CALL_DEMOGRAPHICS = "demographics"
CALL_TASTE = "taste_analysis"
CALL_AFFINITY = "enhance_profile"
ALL_CALLS = (CALL_DEMOGRAPHICS, CALL_TASTE, CALL_AFFINITY)


class CulturalInsightGateway:
    """Demographic and related-interest lookups for a set of cultural tags.

    The three lookups are independent. Each one raises
    ``UpstreamUnavailableError`` on its own; ``gather`` runs them together and
    turns whatever subset succeeded into a ``CulturalSignal``. When none
    succeeds the signal is empty and ``insights_available`` is false.
    """

    def __init__(self, client: Optional[QlooClient] = None) -> None:
        self._client = client or QlooClient()

    @property
    def configured(self) -> bool:
        return self._client.configured

    async def demographics(self, categories: Sequence[str]) -> list[DemographicAffinity]:
        response = await self._client.get_demographics(categories)
        payload = _require(response, CALL_DEMOGRAPHICS)
        return parse_demographics(payload)

    async def taste_analysis(self, categories: Sequence[str]) -> list[RelatedInterest]:
        response = await self._client.get_taste_analysis(categories, take=settings.QLOO_TASTE_TAKE)
        payload = _require(response, CALL_TASTE)
        return parse_related_interests(payload)

    async def enhance_profile(self, tags: Iterable[CulturalTag], categories: Sequence[str]) -> CulturalSignal:
        """Requester tags plus affinity-based related interests."""

        requester_tags = frozenset(tags)
        response = await self._client.get_basic_insights(
            filter_type=FILTER_TAG,
            tags=sorted(requester_tags)[: settings.QLOO_AFFINITY_MAX_TAGS],
            parent_types=categories,
            take=settings.QLOO_AFFINITY_TAKE,
        )
        payload = _require(response, CALL_AFFINITY)
        return CulturalSignal(
            tags=requester_tags,
            related_interests=parse_related_interests(payload),
            insights_available=True,
        )

    async def gather(self, tags: Iterable[CulturalTag], categories: Sequence[str]) -> CulturalSignal:
        """Run all three lookups concurrently; failures degrade the signal, never raise."""

        requester_tags = frozenset(tags)
        if not self.configured:
            logger.info("Qloo API key not configured, skipping cultural insights")
            return CulturalSignal.unavailable(failed_calls=list(ALL_CALLS))

        settled = await settle_all(
            {
                CALL_DEMOGRAPHICS: self.demographics(categories),
                CALL_TASTE: self.taste_analysis(categories),
                CALL_AFFINITY: self.enhance_profile(requester_tags, categories),
            }
        )

        failed: list[str] = []
        for name, outcome in settled.items():
            if not outcome.ok:
                failed.append(name)
                logger.warning(
                    "Cultural insight lookup failed",
                    extra=sanitize_log_extra(call=name, error=str(outcome.error)),
                )

        if len(failed) == len(ALL_CALLS):
            logger.warning("Every cultural insight lookup failed, continuing without cultural signals")
            return CulturalSignal.unavailable(failed_calls=failed)

        demographics: list[DemographicAffinity] = []
        if settled[CALL_DEMOGRAPHICS].ok:
            demographics = settled[CALL_DEMOGRAPHICS].value

        related: list[RelatedInterest] = []
        if settled[CALL_TASTE].ok:
            related.extend(settled[CALL_TASTE].value)
        if settled[CALL_AFFINITY].ok:
            related.extend(settled[CALL_AFFINITY].value.related_interests)

        signal = CulturalSignal(
            tags=requester_tags,
            demographics=demographics,
            related_interests=_dedupe_interests(related),
            insights_available=True,
            failed_calls=failed,
        )
        logger.info(
            "Gathered cultural insights",
            extra=sanitize_log_extra(
                available=signal.insights_available,
                demographics=len(signal.demographics),
                related=len(signal.related_interests),
                failed_calls=failed,
            ),
        )
        return signal


def _require(response: InsightsContract, call: str) -> dict[str, Any]:
    if response.state == FetchState.FAILED or response.state == FetchState.NOT_FOUND:
        raise UpstreamUnavailableError("qloo", f"{call}: {response.error or 'request failed'}", status_code=response.status_code)
    return response.data or {}


def _results_list(payload: dict[str, Any], key: str) -> list[Any]:
    results = payload.get("results")
    if isinstance(results, dict) and isinstance(results.get(key), list):
        return results[key]
    if isinstance(payload.get(key), list):
        return payload[key]
    return []


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_demographics(payload: dict[str, Any]) -> list[DemographicAffinity]:
    """Demographic affinities from either the insights or the flattened shape.

    Insights entries carry signed affinities in [-1, 1] per age bracket and
    gender; the strongest age bracket wins and is rescaled into [0, 1].
    """

    affinities: list[DemographicAffinity] = []
    for item in _results_list(payload, "demographics"):
        if not isinstance(item, dict):
            continue

        query = item.get("query")
        if isinstance(query, dict):
            age_map = {key: score for key, score in (query.get("age") or {}).items() if _as_float(score) is not None}
            gender_map = query.get("gender") or {}
            male = _as_float(gender_map.get("male")) or 0.0
            female = _as_float(gender_map.get("female")) or 0.0

            if age_map:
                bracket, raw = max(age_map.items(), key=lambda entry: float(entry[1]))
                raw_score = float(raw)
            else:
                bracket, raw_score = "unknown", max(male, female)

            if male > female:
                skew = "male"
            elif female > male:
                skew = "female"
            else:
                skew = "neutral"

            affinities.append(
                DemographicAffinity(
                    age_bracket=str(bracket),
                    gender_skew=skew,
                    affinity_score=_clamp((raw_score + 1) / 2),
                    entity_id=item.get("entity_id"),
                )
            )
            continue

        if "age_group" in item or "affinity_score" in item:
            affinities.append(
                DemographicAffinity(
                    age_bracket=str(item.get("age_group") or "unknown"),
                    gender_skew=str(item.get("gender") or "neutral"),
                    affinity_score=_clamp(_as_float(item.get("affinity_score")) or 0.0),
                    entity_id=item.get("entity_id"),
                )
            )
    return affinities


def parse_related_interests(payload: dict[str, Any]) -> list[RelatedInterest]:
    interests: list[RelatedInterest] = []
    for item in _results_list(payload, "tags"):
        if not isinstance(item, dict):
            continue
        name = item.get("name") or item.get("tag")
        if not isinstance(name, str) or not name.strip():
            continue
        interests.append(
            RelatedInterest(
                tag=re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-"),
                popularity=_as_float(item.get("popularity")) or 0.0,
            )
        )
    return interests


def _dedupe_interests(interests: list[RelatedInterest]) -> list[RelatedInterest]:
    best: dict[str, RelatedInterest] = {}
    for interest in interests:
        if not interest.tag:
            continue
        current = best.get(interest.tag)
        if current is None or interest.popularity > current.popularity:
            best[interest.tag] = interest
    return sorted(best.values(), key=lambda interest: (-interest.popularity, interest.tag))
