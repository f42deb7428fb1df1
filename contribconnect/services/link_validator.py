"""Repository link validation."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from contribconnect.clients.github import GitHubClient
from contribconnect.clients.log_sanitizer import sanitize_log_extra
from contribconnect.config.settings import settings

logger = logging.getLogger(__name__)

INVALID_FORMAT_ERROR = "Invalid GitHub URL format. Expected: https://github.com/owner/repo"
NOT_FOUND_ERROR = "Repository not found or private"
MAX_CONCURRENCY = 10

# Owner or repo name; "." and ".." are path traversal, not names
_SEGMENT = r"(?!\.+(?![a-zA-Z0-9._-]))[a-zA-Z0-9._-]+"


@dataclass(frozen=True, slots=True)
class LinkValidation:
    url: str
    is_valid: bool
    exists: bool
    owner: Optional[str] = None
    repo: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class LinkValidationBatch:
    valid: list[LinkValidation] = field(default_factory=list)
    invalid: list[LinkValidation] = field(default_factory=list)

    @property
    def valid_urls(self) -> set[str]:
        return {item.url for item in self.valid}


class LinkValidator:
    """Checks that repository URLs are well formed and point at a public repository.

    Shape is checked first without I/O; only well-formed URLs are probed.
    ``validate`` never raises: probe failures come back as ``exists=False``
    with an ``error``.
    """

    def __init__(
        self,
        client: Optional[GitHubClient] = None,
        *,
        host: Optional[str] = None,
        concurrency: Optional[int] = None,
    ) -> None:
        self._client = client or GitHubClient()
        web_host = re.escape(host or settings.GITHUB_WEB_HOST)
        self._url_pattern = re.compile(rf"^https://{web_host}/({_SEGMENT})/({_SEGMENT})/?$")
        self._extract_pattern = re.compile(rf"https://{web_host}/{_SEGMENT}/{_SEGMENT}")
        limit = concurrency or settings.LINK_VALIDATION_CONCURRENCY
        self._concurrency = max(1, min(limit, MAX_CONCURRENCY))

    def parse(self, url: str) -> Optional[tuple[str, str]]:
        match = self._url_pattern.match((url or "").strip())
        if not match:
            return None
        return match.group(1), match.group(2)

    async def validate(self, url: str) -> LinkValidation:
        parsed = self.parse(url)
        if parsed is None:
            return LinkValidation(url=url, is_valid=False, exists=False, error=INVALID_FORMAT_ERROR)

        owner, repo = parsed
        try:
            probe = await self._client.probe_repository(owner, repo)
        except Exception as exc:
            logger.warning(
                "Repository existence probe raised",
                extra=sanitize_log_extra(url=url, error=str(exc) or type(exc).__name__),
            )
            return LinkValidation(
                url=url,
                is_valid=False,
                exists=False,
                owner=owner,
                repo=repo,
                error=f"Validation failed: {exc or type(exc).__name__}",
            )

        if probe.data:
            return LinkValidation(url=url, is_valid=True, exists=True, owner=owner, repo=repo)

        error = NOT_FOUND_ERROR if probe.status_code == 404 else f"Validation failed: {probe.error or 'unknown error'}"
        return LinkValidation(url=url, is_valid=False, exists=False, owner=owner, repo=repo, error=error)

    async def validate_many(self, urls: Iterable[str]) -> LinkValidationBatch:
        """Validate distinct URLs concurrently (bounded) and partition the results."""

        unique = list(dict.fromkeys(urls))
        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(url: str) -> LinkValidation:
            async with semaphore:
                return await self.validate(url)

        results = await asyncio.gather(*(bounded(url) for url in unique))

        batch = LinkValidationBatch()
        for result in results:
            (batch.valid if result.is_valid and result.exists else batch.invalid).append(result)

        if batch.invalid:
            logger.warning(
                "Dropped invalid repository links",
                extra=sanitize_log_extra(invalid=[item.url for item in batch.invalid], checked=len(unique)),
            )
        return batch

    def extract_urls(self, text: str) -> list[str]:
        # Sentence punctuation directly after a link is not part of the repo name
        found = (match.rstrip(".") for match in self._extract_pattern.findall(text or ""))
        return list(dict.fromkeys(found))

    async def extract_and_validate(self, text: str) -> LinkValidationBatch:
        return await self.validate_many(self.extract_urls(text))
