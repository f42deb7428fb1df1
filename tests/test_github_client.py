from __future__ import annotations

import asyncio

import httpx

from contribconnect.clients.contracts import FetchState
from contribconnect.clients.github import GitHubClient

BASE_URL = "https://api.github.test"


def _client(handler) -> GitHubClient:
    return GitHubClient(token="test-token", base_url=BASE_URL, transport=httpx.MockTransport(handler))


def test_search_returns_items_and_sends_auth_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"total_count": 42, "items": [{"full_name": "octo/repo", "html_url": "https://github.com/octo/repo"}]},
        )

    async def run():
        async with _client(handler) as client:
            return await client.search_repositories("language:python is:public", sort="stars", per_page=20)

    result = asyncio.run(run())

    assert result.state == FetchState.OK
    assert result.data["total_count"] == 42
    assert result.data["items"][0]["full_name"] == "octo/repo"
    assert seen[0].url.path == "/search/repositories"
    assert seen[0].url.params["q"] == "language:python is:public"
    assert seen[0].url.params["per_page"] == "20"
    assert seen[0].headers["Authorization"] == "Bearer test-token"
    assert seen[0].headers["Accept"] == "application/vnd.github+json"


def test_search_without_matches_is_empty_not_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"total_count": 0, "items": []})

    async def run():
        async with _client(handler) as client:
            return await client.search_repositories("nothing")

    result = asyncio.run(run())

    assert result.state == FetchState.EMPTY
    assert result.ok
    assert result.data == {"total_count": 0, "items": []}


def test_rejected_and_rate_limited_searches_fail_without_retry() -> None:
    calls: list[int] = []
    statuses = iter([422, 403])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        calls.append(status)
        return httpx.Response(status, json={"message": "nope"})

    async def run():
        async with _client(handler) as client:
            return (
                await client.search_repositories("bad query"),
                await client.search_repositories("any"),
            )

    rejected, limited = asyncio.run(run())

    assert rejected.state == FetchState.FAILED and rejected.status_code == 422
    assert limited.state == FetchState.FAILED and limited.status_code == 403
    assert calls == [422, 403]


def test_transport_errors_become_failed_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        async with _client(handler) as client:
            return await client.get_user("octocat")

    result = asyncio.run(run())

    assert result.state == FetchState.FAILED
    assert "connection refused" in result.error


def test_unknown_user_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    async def run():
        async with _client(handler) as client:
            return await client.get_user("ghost-user")

    assert asyncio.run(run()).state == FetchState.NOT_FOUND


def test_probe_repository_uses_head_requests() -> None:
    methods: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        if request.url.path == "/repos/octo/exists":
            return httpx.Response(200)
        return httpx.Response(404)

    async def run():
        async with _client(handler) as client:
            return await client.probe_repository("octo", "exists"), await client.probe_repository("octo", "missing")

    found, missing = asyncio.run(run())

    assert methods == ["HEAD", "HEAD"]
    assert found.data is True
    assert missing.data is False
    assert missing.status_code == 404
