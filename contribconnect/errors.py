"""Error taxonomy for the recommendation pipeline."""

from __future__ import annotations

from typing import Optional


class ContribConnectError(Exception):
    """Base class for pipeline errors."""


class InvalidInputError(ContribConnectError, ValueError):
    """Malformed request parameters. Surfaced immediately, never retried."""


class UpstreamUnavailableError(ContribConnectError):
    """A signal source was unreachable, timed out or answered with an error."""

    def __init__(self, source: str, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(f"{source} unavailable: {message}")
        self.source = source
        self.status_code = status_code


class ProfileNotFoundError(ContribConnectError):
    """The requested GitHub user does not exist."""

    def __init__(self, username: str) -> None:
        super().__init__(f"GitHub user not found: {username}")
        self.username = username


class SchemaViolationError(ContribConnectError):
    """Generated output did not match the recommendation schema."""


class GenerationError(ContribConnectError):
    """The generative provider failed to produce any output."""
