"""Upstream signal-source clients."""

from contribconnect.clients.contracts import FetchResult, FetchState
from contribconnect.clients.github import GitHubClient
from contribconnect.clients.qloo import QlooClient

__all__ = [
    "FetchResult",
    "FetchState",
    "GitHubClient",
    "QlooClient",
]
