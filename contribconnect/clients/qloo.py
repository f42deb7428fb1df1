"""Async client for the Qloo Insights API (cultural signal source)."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from contribconnect.clients.contracts import FetchResult, FetchState, InsightsContract
from contribconnect.clients.log_sanitizer import sanitize_log_extra
from contribconnect.config.settings import settings

logger = logging.getLogger(__name__)

FILTER_DEMOGRAPHICS = "urn:demographics"
FILTER_TAG = "urn:tag"
TASTE_TAG_TYPES = "technology,lifestyle,entertainment"


class QlooClient:
    """Thin wrapper over the `/insights` endpoint.

    All request parameters travel as query-string values; list parameters are
    comma-joined and empty values are dropped before sending.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        base_url: Optional[str] = None,
        transport: Optional[Any] = None,
    ) -> None:
        self._api_key = api_key or settings.QLOO_API_KEY or ""
        self._timeout_seconds = timeout_seconds or settings.QLOO_TIMEOUT_SECONDS
        self._base_url = base_url or settings.QLOO_BASE_URL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def __aenter__(self) -> "QlooClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_demographics(self, tags: Sequence[str]) -> InsightsContract:
        return await self.get_insights(
            {
                "filter.type": FILTER_DEMOGRAPHICS,
                "signal.interests.tags": ",".join(tags),
            }
        )

    async def get_taste_analysis(self, tags: Sequence[str], *, take: int = 20) -> InsightsContract:
        return await self.get_insights(
            {
                "filter.type": FILTER_TAG,
                "filter.tag.types": TASTE_TAG_TYPES,
                "signal.interests.tags": ",".join(tags),
                "take": str(take),
            }
        )

    async def get_basic_insights(
        self,
        *,
        filter_type: str,
        tags: Sequence[str],
        parent_types: Sequence[str] = (),
        take: Optional[int] = None,
    ) -> InsightsContract:
        params = {
            "filter.type": filter_type,
            "filter.parent_types": ",".join(parent_types),
            "signal.interests.tags": ",".join(tags),
        }
        if take:
            params["take"] = str(take)
        return await self.get_insights(params)

    async def get_insights(self, params: dict[str, str]) -> InsightsContract:
        if not self.configured:
            return FetchResult(state=FetchState.FAILED, error="Qloo API key not configured")

        query = {key: value for key, value in params.items() if value and value.strip()}
        client = await self._ensure_client()

        try:
            response = await client.get("/insights", params=query)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning(
                "Qloo insights request returned error status",
                extra=sanitize_log_extra(params=query, status_code=status_code, error=str(exc)),
            )
            return FetchResult(state=FetchState.FAILED, status_code=status_code, error=str(exc))
        except httpx.HTTPError as exc:
            logger.warning(
                "Qloo insights request failed",
                extra=sanitize_log_extra(params=query, error=str(exc) or type(exc).__name__),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc) or type(exc).__name__)
        except ValueError as exc:
            return FetchResult(
                state=FetchState.FAILED,
                status_code=response.status_code,
                error=f"Invalid JSON from Qloo: {exc}",
            )

        if not isinstance(payload, dict) or not payload:
            return FetchResult(state=FetchState.EMPTY, data={}, status_code=response.status_code)
        return FetchResult(state=FetchState.OK, data=payload, status_code=response.status_code)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Accept": "application/json",
                "User-Agent": settings.USER_AGENT,
                "X-Api-Key": self._api_key,
            },
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client
