"""Run independent coroutines to completion and collect every outcome."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class Settled(Generic[T]):
    """Outcome of one settled coroutine: a value or the exception it raised."""

    name: str
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(named: dict[str, Awaitable[Any]]) -> dict[str, Settled[Any]]:
    """Await every coroutine in ``named``; one failure never cancels the rest.

    Cancellation of the caller still propagates: if any branch was cancelled
    the ``CancelledError`` is re-raised after the others settle.
    """

    names = list(named)
    results = await asyncio.gather(*named.values(), return_exceptions=True)

    settled: dict[str, Settled[Any]] = {}
    for name, result in zip(names, results):
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        if isinstance(result, Exception):
            settled[name] = Settled(name=name, error=result)
        else:
            settled[name] = Settled(name=name, value=result)
    return settled
