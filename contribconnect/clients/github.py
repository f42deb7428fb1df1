"""Async GitHub REST client for the technical signal source."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from contribconnect.clients.contracts import (
    FetchResult,
    FetchState,
    SearchContract,
    UserContract,
    UserReposContract,
)
from contribconnect.clients.log_sanitizer import sanitize_log_extra
from contribconnect.config.settings import settings

logger = logging.getLogger(__name__)


class GitHubClient:
    """Typed GitHub API client.

    Every call makes exactly one request bounded by the client timeout. HTTP,
    transport and decoding problems come back as ``FetchState.FAILED`` rather
    than exceptions; retry and fallback policy belongs to the callers.
    """

    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        base_url: Optional[str] = None,
        transport: Optional[Any] = None,
    ) -> None:
        self._token = token or settings.GITHUB_TOKEN
        self._timeout_seconds = timeout_seconds or settings.GITHUB_TIMEOUT_SECONDS
        self._base_url = base_url or settings.GITHUB_API_URL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GitHubClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def search_repositories(
        self,
        query: str,
        *,
        sort: str = "stars",
        order: str = "desc",
        per_page: int = 20,
        page: int = 1,
    ) -> SearchContract:
        """Run `/search/repositories` and return the raw payload.

        ``data`` keeps both ``total_count`` and ``items``. A successful search
        without matches is ``EMPTY``, not ``FAILED``.
        """

        response = await self._request(
            "GET",
            "/search/repositories",
            params={"q": query, "sort": sort, "order": order, "per_page": per_page, "page": page},
        )
        if response.state != FetchState.OK:
            return response

        payload = response.data if isinstance(response.data, dict) else {}
        items = payload.get("items") if isinstance(payload.get("items"), list) else []
        total = payload.get("total_count") if isinstance(payload.get("total_count"), int) else len(items)
        state = FetchState.OK if items else FetchState.EMPTY
        return FetchResult(
            state=state,
            data={"total_count": total, "items": items},
            status_code=response.status_code,
        )

    async def get_user(self, username: str) -> UserContract:
        return await self._request("GET", f"/users/{username}")

    async def list_user_repos(
        self,
        username: str,
        *,
        per_page: int = 100,
        sort: str = "updated",
    ) -> UserReposContract:
        return await self._request(
            "GET",
            f"/users/{username}/repos",
            params={"sort": sort, "per_page": per_page},
        )

    async def probe_repository(self, owner: str, repo: str) -> FetchResult[bool]:
        """Lightweight existence check for a public repository (HEAD request)."""

        response = await self._request("HEAD", f"/repos/{owner}/{repo}", decode=False)
        if response.state == FetchState.OK:
            return FetchResult(state=FetchState.OK, data=True, status_code=response.status_code)
        return FetchResult(
            state=response.state,
            data=False,
            status_code=response.status_code,
            error=response.error,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        decode: bool = True,
    ) -> FetchResult[Any]:
        client = await self._ensure_client()

        try:
            response = await client.request(method, path, params=params)
        except httpx.HTTPError as exc:
            logger.warning(
                "GitHub request failed",
                extra=sanitize_log_extra(method=method, path=path, params=params, error=str(exc) or type(exc).__name__),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc) or type(exc).__name__)

        if response.status_code == 404:
            return FetchResult(state=FetchState.NOT_FOUND, status_code=404, error="Not found")

        if response.status_code in (403, 429):
            logger.warning(
                "GitHub API rate limit encountered",
                extra=sanitize_log_extra(
                    path=path,
                    params=params,
                    status_code=response.status_code,
                    retry_after=response.headers.get("retry-after"),
                    ratelimit_reset=response.headers.get("x-ratelimit-reset"),
                ),
            )
            return FetchResult(
                state=FetchState.FAILED,
                status_code=response.status_code,
                error=f"GitHub rate limit encountered ({response.status_code})",
            )

        if response.status_code == 422:
            # GitHub rejects search queries it cannot parse with 422
            logger.warning(
                "GitHub rejected request",
                extra=sanitize_log_extra(path=path, params=params, status_code=422),
            )
            return FetchResult(state=FetchState.FAILED, status_code=422, error="Validation failed")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "GitHub request returned error status",
                extra=sanitize_log_extra(path=path, params=params, status_code=response.status_code, error=str(exc)),
            )
            return FetchResult(state=FetchState.FAILED, status_code=response.status_code, error=str(exc))

        if not decode:
            return FetchResult(state=FetchState.OK, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            return FetchResult(
                state=FetchState.FAILED,
                status_code=response.status_code,
                error=f"Invalid JSON from GitHub: {exc}",
            )

        if payload is None or (isinstance(payload, (list, dict)) and len(payload) == 0):
            return FetchResult(state=FetchState.EMPTY, data=payload, status_code=response.status_code)

        return FetchResult(state=FetchState.OK, data=payload, status_code=response.status_code)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client
