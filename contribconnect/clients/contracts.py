"""Typed fetch contracts shared by the upstream clients."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FetchState(str, Enum):
    """Outcome of a single upstream request."""

    OK = "ok"
    EMPTY = "empty"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Upstream response wrapper. Clients return this instead of raising."""

    state: FetchState
    data: Optional[T] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state in (FetchState.OK, FetchState.EMPTY)


SearchContract = FetchResult[dict[str, Any]]
UserContract = FetchResult[dict[str, Any]]
UserReposContract = FetchResult[list[dict[str, Any]]]
InsightsContract = FetchResult[dict[str, Any]]
