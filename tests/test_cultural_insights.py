from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from contribconnect.clients.contracts import FetchResult, FetchState
from contribconnect.clients.qloo import QlooClient
from contribconnect.models.cultural import RelatedInterest
from contribconnect.services.cultural_insights import (
    ALL_CALLS,
    CulturalInsightGateway,
    parse_demographics,
    parse_related_interests,
)

CATEGORIES = ["urn:tag:keyword:media:science", "urn:tag:keyword:media:technology"]
TAGS = {"data-science", "ai", "research"}


class FakeQlooClient:
    def __init__(
        self,
        *,
        configured: bool = True,
        demographics: Any = None,
        taste: Any = None,
        affinity: Any = None,
    ) -> None:
        self.configured = configured
        self._responses = {"demographics": demographics, "taste": taste, "affinity": affinity}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def _respond(self, name: str, **kwargs: Any) -> FetchResult:
        self.calls.append((name, kwargs))
        response = self._responses[name]
        if isinstance(response, Exception):
            raise response
        return response

    async def get_demographics(self, tags):
        return await self._respond("demographics", tags=list(tags))

    async def get_taste_analysis(self, tags, *, take=20):
        return await self._respond("taste", tags=list(tags), take=take)

    async def get_basic_insights(self, *, filter_type, tags, parent_types=(), take=None):
        return await self._respond(
            "affinity",
            filter_type=filter_type,
            tags=list(tags),
            parent_types=list(parent_types),
            take=take,
        )


def _ok(payload: dict[str, Any]) -> FetchResult:
    return FetchResult(state=FetchState.OK, data=payload, status_code=200)


def _failed() -> FetchResult:
    return FetchResult(state=FetchState.FAILED, status_code=503, error="service unavailable")


DEMOGRAPHICS_PAYLOAD = {
    "results": {
        "demographics": [
            {
                "entity_id": "urn:tag:keyword:media:science",
                "query": {
                    "age": {"24_and_younger": 0.2, "25_to_29": 0.6, "30_to_34": -0.1},
                    "gender": {"male": 0.3, "female": -0.3},
                },
            }
        ]
    }
}


def test_parse_demographics_picks_strongest_bracket_and_rescales() -> None:
    [affinity] = parse_demographics(DEMOGRAPHICS_PAYLOAD)

    assert affinity.age_bracket == "25_to_29"
    assert affinity.gender_skew == "male"
    assert affinity.affinity_score == pytest.approx(0.8)
    assert affinity.entity_id == "urn:tag:keyword:media:science"


def test_parse_demographics_accepts_flattened_shape_and_clamps() -> None:
    [affinity] = parse_demographics({"demographics": [{"age_group": "25-34", "gender": "female", "affinity_score": 1.7}]})

    assert affinity.age_bracket == "25-34"
    assert affinity.gender_skew == "female"
    assert affinity.affinity_score == 1.0


def test_parse_related_interests_normalizes_names() -> None:
    interests = parse_related_interests(
        {"results": {"tags": [{"name": "Science Fiction", "popularity": 0.9}, {"name": "", "popularity": 1}]}}
    )

    assert interests == [RelatedInterest(tag="science-fiction", popularity=0.9)]


def test_gather_merges_every_successful_lookup() -> None:
    client = FakeQlooClient(
        demographics=_ok(DEMOGRAPHICS_PAYLOAD),
        taste=_ok({"results": {"tags": [{"name": "Robotics", "popularity": 0.4}, {"name": "Space", "popularity": 0.7}]}}),
        affinity=_ok({"results": {"tags": [{"name": "Robotics", "popularity": 0.8}]}}),
    )

    signal = asyncio.run(CulturalInsightGateway(client).gather(TAGS, CATEGORIES))

    assert signal.insights_available is True
    assert signal.failed_calls == []
    assert signal.tags == frozenset(TAGS)
    assert len(signal.demographics) == 1
    assert signal.related_interests == [
        RelatedInterest(tag="robotics", popularity=0.8),
        RelatedInterest(tag="space", popularity=0.7),
    ]
    assert signal.related_tags == {"robotics", "space"}


def test_gather_sends_categories_and_affinity_parameters() -> None:
    client = FakeQlooClient(
        demographics=_ok({}),
        taste=_ok({}),
        affinity=_ok({}),
    )

    asyncio.run(CulturalInsightGateway(client).gather(TAGS, CATEGORIES))

    calls = dict(client.calls)
    assert calls["demographics"]["tags"] == CATEGORIES
    assert calls["taste"] == {"tags": CATEGORIES, "take": 20}
    assert calls["affinity"]["filter_type"] == "urn:tag"
    assert calls["affinity"]["parent_types"] == CATEGORIES
    assert calls["affinity"]["tags"] == sorted(TAGS)
    assert calls["affinity"]["take"] == 15


def test_partial_failure_degrades_without_raising() -> None:
    client = FakeQlooClient(
        demographics=_failed(),
        taste=RuntimeError("socket closed"),
        affinity=_ok({"results": {"tags": [{"name": "Open Data", "popularity": 0.5}]}}),
    )

    signal = asyncio.run(CulturalInsightGateway(client).gather(TAGS, CATEGORIES))

    assert signal.insights_available is True
    assert sorted(signal.failed_calls) == ["demographics", "taste_analysis"]
    assert signal.demographics == []
    assert signal.related_tags == {"open-data"}


def test_total_failure_marks_insights_unavailable() -> None:
    client = FakeQlooClient(demographics=_failed(), taste=_failed(), affinity=_failed())

    signal = asyncio.run(CulturalInsightGateway(client).gather(TAGS, CATEGORIES))

    assert signal.insights_available is False
    assert sorted(signal.failed_calls) == sorted(ALL_CALLS)
    assert signal.demographics == []
    assert signal.related_interests == []
    assert signal.tags == frozenset()


def test_unconfigured_client_skips_every_call() -> None:
    client = FakeQlooClient(configured=False)

    signal = asyncio.run(CulturalInsightGateway(client).gather(TAGS, CATEGORIES))

    assert client.calls == []
    assert signal.insights_available is False
    assert signal.tags == frozenset()
    assert sorted(signal.failed_calls) == sorted(ALL_CALLS)


def test_qloo_client_sends_key_and_drops_empty_params() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"results": {"tags": []}})

    async def run():
        async with QlooClient(
            api_key="qloo-key",
            base_url="https://qloo.test/v2",
            transport=httpx.MockTransport(handler),
        ) as client:
            return await client.get_basic_insights(filter_type="urn:tag", tags=["ai", "research"])

    result = asyncio.run(run())

    assert result.state == FetchState.OK
    assert seen[0].url.path == "/v2/insights"
    assert seen[0].headers["X-Api-Key"] == "qloo-key"
    assert seen[0].url.params["filter.type"] == "urn:tag"
    assert seen[0].url.params["signal.interests.tags"] == "ai,research"
    assert "filter.parent_types" not in seen[0].url.params


def test_qloo_client_without_key_fails_fast(monkeypatch) -> None:
    from contribconnect.config.settings import settings

    monkeypatch.setattr(settings, "QLOO_API_KEY", None)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = QlooClient(transport=httpx.MockTransport(handler))
    result = asyncio.run(client.get_demographics(["ai"]))

    assert result.state == FetchState.FAILED
    assert client.configured is False
