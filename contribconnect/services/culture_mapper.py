"""Technical token to cultural tag mapping.

Pure lookup tables and functions, no I/O. Every function here is
deterministic: identical input always yields identical output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from contribconnect.config.settings import settings
from contribconnect.models.cultural import CulturalTag

FALLBACK_TAG_PREFIX = "tech-"
GENERIC_TECH_TAG = "technology"
LOCATION_TAG_PREFIX = "location-"
DEFAULT_INSIGHT_CATEGORY = "urn:tag:keyword:media:technology"

_SCIENCE = "urn:tag:keyword:media:science"
_TECHNOLOGY = "urn:tag:keyword:media:technology"
_EDUCATION = "urn:tag:keyword:media:education"
_BUSINESS = "urn:tag:keyword:media:business"
_ART = "urn:tag:keyword:media:art"
_COMEDY = "urn:tag:genre:media:comedy"
_ACTION = "urn:tag:genre:media:action"
_SCI_FI = "urn:tag:genre:media:sci_fi"


@dataclass(frozen=True, slots=True)
class TechCulturalMapping:
    category: str
    cultural_tags: tuple[CulturalTag, ...]
    insight_categories: tuple[str, ...]
    description: str


TECH_TO_CULTURE: dict[str, TechCulturalMapping] = {
    # Languages
    "python": TechCulturalMapping(
        "language",
        ("data-science", "ai", "academic", "research", "automation"),
        (_SCIENCE, _TECHNOLOGY, _EDUCATION),
        "Python developers often have interests in data, AI and academic pursuits",
    ),
    "javascript": TechCulturalMapping(
        "language",
        ("web-development", "creative", "startup", "modern-tech", "user-experience"),
        (_TECHNOLOGY, _COMEDY, _ART),
        "JavaScript developers tend to be creative and startup-oriented",
    ),
    "typescript": TechCulturalMapping(
        "language",
        ("enterprise", "type-safety", "engineering", "scalability", "best-practices"),
        (_TECHNOLOGY, _BUSINESS),
        "TypeScript users value structure and enterprise-grade solutions",
    ),
    "rust": TechCulturalMapping(
        "language",
        ("systems-programming", "performance", "security", "low-level", "technical-excellence"),
        (_TECHNOLOGY, _SCI_FI),
        "Rust developers focus on performance and security",
    ),
    "go": TechCulturalMapping(
        "language",
        ("cloud-native", "devops", "microservices", "simplicity", "google-ecosystem"),
        ("urn:tag:technology", "urn:tag:infrastructure"),
        "Go developers often work in cloud and DevOps",
    ),
    "java": TechCulturalMapping(
        "language",
        ("enterprise", "backend", "traditional", "banking", "large-scale"),
        ("urn:tag:technology", "urn:tag:business"),
        "Java developers often work in enterprise environments",
    ),
    "c--": TechCulturalMapping(
        "language",
        ("systems-programming", "performance", "game-engines", "low-level", "embedded"),
        (_TECHNOLOGY, _ACTION),
        "C++ developers build performance-critical software",
    ),
    "ruby": TechCulturalMapping(
        "language",
        ("web-development", "startup", "developer-happiness", "pragmatic", "community-driven"),
        (_TECHNOLOGY, _BUSINESS),
        "Ruby developers value expressiveness and community",
    ),
    "swift": TechCulturalMapping(
        "language",
        ("mobile-first", "apple-ecosystem", "consumer-tech", "design", "user-experience"),
        ("urn:tag:technology", "urn:tag:lifestyle"),
        "Swift developers build for the Apple ecosystem",
    ),
    "kotlin": TechCulturalMapping(
        "language",
        ("mobile-first", "android", "modern-jvm", "pragmatic", "consumer-tech"),
        ("urn:tag:technology", "urn:tag:lifestyle"),
        "Kotlin developers target Android and the modern JVM",
    ),
    "jupyter-notebook": TechCulturalMapping(
        "language",
        ("data-science", "research", "academic", "visualization", "experimentation"),
        (_SCIENCE, _EDUCATION),
        "Notebook authors explore data and publish research",
    ),
    # Frameworks & libraries
    "react": TechCulturalMapping(
        "framework",
        ("modern-web", "component-based", "facebook", "ui-focused", "spa"),
        ("urn:tag:technology", "urn:tag:design"),
        "React developers focus on modern UI development",
    ),
    "vue": TechCulturalMapping(
        "framework",
        ("progressive", "community-driven", "pragmatic", "indie", "approachable"),
        ("urn:tag:technology", "urn:tag:community"),
        "Vue developers value community and pragmatism",
    ),
    "angular": TechCulturalMapping(
        "framework",
        ("enterprise-frontend", "google", "structured", "full-featured", "corporate"),
        ("urn:tag:technology", "urn:tag:business"),
        "Angular developers work on enterprise applications",
    ),
    "nextjs": TechCulturalMapping(
        "framework",
        ("full-stack", "vercel", "modern-web", "performance", "seo"),
        ("urn:tag:technology", "urn:tag:marketing"),
        "Next.js developers build performant full-stack apps",
    ),
    # Domains & interests
    "machine-learning": TechCulturalMapping(
        "domain",
        ("ai", "data-science", "research", "innovation", "future-tech"),
        ("urn:tag:science", "urn:tag:technology"),
        "ML practitioners are interested in cutting-edge AI",
    ),
    "web3": TechCulturalMapping(
        "domain",
        ("blockchain", "cryptocurrency", "decentralization", "finance", "innovation"),
        ("urn:tag:technology", "urn:tag:finance"),
        "Web3 developers are interested in blockchain and crypto",
    ),
    "game-development": TechCulturalMapping(
        "domain",
        ("gaming", "entertainment", "graphics", "creativity", "interactive-media"),
        ("urn:tag:gaming", "urn:tag:entertainment"),
        "Game developers combine technical and creative skills",
    ),
    "mobile-development": TechCulturalMapping(
        "domain",
        ("mobile-first", "app-store", "user-experience", "ios-android", "consumer-tech"),
        ("urn:tag:technology", "urn:tag:lifestyle"),
        "Mobile developers focus on consumer applications",
    ),
    "devops": TechCulturalMapping(
        "domain",
        ("automation", "infrastructure", "cloud", "efficiency", "reliability"),
        ("urn:tag:technology", "urn:tag:infrastructure"),
        "DevOps engineers focus on automation and reliability",
    ),
    "cybersecurity": TechCulturalMapping(
        "domain",
        ("security", "hacking", "privacy", "defense", "ethical-hacking"),
        ("urn:tag:technology", "urn:tag:security"),
        "Security professionals protect systems and data",
    ),
}

# Spellings that normalize differently but mean the same technology.
TOKEN_ALIASES: dict[str, str] = {
    "golang": "go",
    "cpp": "c--",
    "next-js": "nextjs",
    "ml": "machine-learning",
    "deep-learning": "machine-learning",
    "gamedev": "game-development",
    "security": "cybersecurity",
}

TOPIC_TO_TAGS: dict[str, tuple[CulturalTag, ...]] = {
    "good-first-issue": ("beginner-friendly", "mentorship", "learning"),
    "hacktoberfest": ("open-source", "community", "contribution"),
    "machine-learning": ("ai", "data-science", "research"),
    "web": ("web-development", "frontend", "internet"),
    "api": ("backend", "integration", "services"),
    "cli": ("command-line", "developer-tools", "automation"),
    "documentation": ("writing", "education", "communication"),
    "testing": ("quality-assurance", "reliability", "engineering"),
    "design": ("ui-ux", "creativity", "visual-arts"),
    "database": ("data-management", "backend", "storage"),
}

_CATEGORY_HEURISTICS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("data", "science", "ml"), (_SCIENCE, _EDUCATION)),
    (("web", "frontend", "react"), (_TECHNOLOGY, _ART)),
    (("ai", "machine", "neural"), (_SCI_FI, _TECHNOLOGY)),
    (("game", "entertainment"), (_COMEDY, _ACTION)),
)

_BIO_INTEREST_PATTERNS = (
    re.compile(r"(?:love|enjoy|passionate about|interested in)\s+(\w+)"),
    re.compile(r"(\w+)\s+enthusiast"),
    re.compile(r"(?:building|creating|working on)\s+(\w+)"),
)

_QUERY_TECH_KEYWORDS = (
    "javascript", "typescript", "python", "java", "go", "rust", "react", "vue",
    "angular", "node", "django", "flask", "spring", "kubernetes", "docker", "aws",
    "azure", "gcp", "ml", "ai", "blockchain", "web3", "mobile", "ios", "android",
    "frontend", "backend", "fullstack", "devops", "database", "api",
)


@dataclass(frozen=True, slots=True)
class CulturalProfile:
    """Requester tag vocabulary plus taste-graph categories for the same tokens."""

    tags: frozenset[CulturalTag]
    insight_categories: tuple[str, ...]


def normalize_token(token: str) -> str:
    """Lowercase and replace every non-alphanumeric character with ``-``."""
    return re.sub(r"[^a-z0-9-]", "-", token.strip().lower())


def _lookup(normalized: str) -> Optional[TechCulturalMapping]:
    return TECH_TO_CULTURE.get(TOKEN_ALIASES.get(normalized, normalized))


def map_to_cultural_tags(tokens: Iterable[Optional[str]]) -> frozenset[CulturalTag]:
    """Map technical tokens to cultural tags.

    Mapped tokens contribute their whole tag list; anything else contributes a
    single ``tech-<token>`` tag. Blank and ``None`` tokens carry no technology
    name and contribute the generic ``technology`` tag, so a non-empty token
    list never maps to an empty set.
    """

    tags: set[CulturalTag] = set()
    for token in tokens:
        if not token or not token.strip():
            tags.add(GENERIC_TECH_TAG)
            continue
        normalized = normalize_token(token)
        mapping = _lookup(normalized)
        if mapping:
            tags.update(mapping.cultural_tags)
        else:
            tags.add(f"{FALLBACK_TAG_PREFIX}{normalized}")
    return frozenset(tags)


def map_topics_to_tags(topics: Iterable[str]) -> frozenset[CulturalTag]:
    """Map repository topics through the topic table; unknown topics pass through normalized."""

    tags: set[CulturalTag] = set()
    for topic in topics:
        if not topic or not topic.strip():
            continue
        lowered = topic.strip().lower()
        if lowered in TOPIC_TO_TAGS:
            tags.update(TOPIC_TO_TAGS[lowered])
        else:
            tags.add(re.sub(r"[^a-z0-9]", "-", lowered))
    return frozenset(tags)


def tokens_to_insight_categories(tokens: Sequence[str], *, limit: Optional[int] = None) -> list[str]:
    """Taste-graph category identifiers for ``tokens``.

    Deduplicated in first-seen order and capped at ``limit`` (defaults to
    ``QLOO_MAX_CATEGORIES``). Falls back to the technology category when no
    token maps to anything.
    """

    cap = limit if limit is not None else settings.QLOO_MAX_CATEGORIES
    categories: list[str] = []

    for token in tokens:
        if not token or not token.strip():
            continue
        mapping = _lookup(normalize_token(token))
        if mapping:
            categories.extend(mapping.insight_categories)

    joined = " ".join(tokens).lower()
    for keywords, heuristic_categories in _CATEGORY_HEURISTICS:
        if any(keyword in joined for keyword in keywords):
            categories.extend(heuristic_categories)

    if not categories:
        categories.append(DEFAULT_INSIGHT_CATEGORY)

    return list(dict.fromkeys(categories))[: max(cap, 1)]


def extract_bio_tokens(bio: Optional[str]) -> list[str]:
    """Best-effort interest extraction from a profile bio. May return nothing."""

    if not bio:
        return []
    lowered = bio.lower()
    tokens: list[str] = []
    for pattern in _BIO_INTEREST_PATTERNS:
        for match in pattern.finditer(lowered):
            tokens.append(re.sub(r"[^a-z0-9]", "-", match.group(1)))
    return list(dict.fromkeys(tokens))


def extract_tech_from_query(query: str) -> list[str]:
    """Technology keywords named in a free-text query."""

    lowered = (query or "").lower()
    return [keyword for keyword in _QUERY_TECH_KEYWORDS if re.search(rf"\b{re.escape(keyword)}\b", lowered)]


def location_tag(location: Optional[str]) -> Optional[CulturalTag]:
    if not location or not location.strip():
        return None
    return f"{LOCATION_TAG_PREFIX}{re.sub(r'[^a-z0-9]', '-', location.strip().lower())}"


def build_cultural_profile(
    *,
    languages: Sequence[str] = (),
    topics: Sequence[str] = (),
    bio: Optional[str] = None,
    location: Optional[str] = None,
    extra_tokens: Sequence[str] = (),
) -> CulturalProfile:
    """Fold every requester signal into one tag vocabulary."""

    bio_tokens = extract_bio_tokens(bio)
    tags = set(map_to_cultural_tags([*languages, *extra_tokens, *bio_tokens]))
    tags.update(map_to_cultural_tags(topics))
    tags.update(map_topics_to_tags(topics))

    place = location_tag(location)
    if place:
        tags.add(place)

    categories = tokens_to_insight_categories([*languages, *extra_tokens, *topics])
    return CulturalProfile(tags=frozenset(tags), insight_categories=tuple(categories))
