"""Requester technical profile."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class ExperienceLevel(str, enum.Enum):
    """Coarse experience bucket derived from public GitHub activity"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERIENCED = "experienced"


class ContributionFrequency(str, enum.Enum):
    """Repositories touched in the recent activity window"""
    VERY_ACTIVE = "very_active"
    ACTIVE = "active"
    MODERATE = "moderate"
    LOW = "low"


@dataclass(frozen=True, slots=True)
class TechnicalProfile:
    """Snapshot of a GitHub user's technical footprint, immutable once fetched."""

    username: str
    languages: dict[str, int]
    experience_level: ExperienceLevel
    contribution_frequency: ContributionFrequency
    name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    public_repos: int = 0
    followers: int = 0
    member_since: Optional[datetime] = None
    topics: tuple[str, ...] = ()
    frameworks: tuple[str, ...] = ()
    domains: tuple[str, ...] = ()
    project_types: tuple[str, ...] = ("creator",)
    suggested_contribution_types: tuple[str, ...] = field(
        default=("code", "documentation", "testing", "bug-fixes")
    )
    learning_opportunities: tuple[str, ...] = ()

    @property
    def primary_languages(self) -> list[str]:
        """Languages ordered by repository count, most used first."""
        return [language for language, _ in sorted(self.languages.items(), key=lambda item: (-item[1], item[0]))]
