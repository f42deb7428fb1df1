"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Contributor Connect"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    USER_AGENT: str = "ContributorConnect-AI/1.0"

    # GitHub API (technical signal source)
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_WEB_HOST: str = "github.com"
    GITHUB_TIMEOUT_SECONDS: float = 10.0
    GITHUB_SEARCH_PER_PAGE: int = 20
    GITHUB_FALLBACK_PER_PAGE: int = 10
    GITHUB_SEARCH_QUERY_MAX_LENGTH: int = 256
    GITHUB_RECENT_ACTIVITY_DAYS: int = 30
    GITHUB_PROFILE_ACTIVITY_DAYS: int = 90
    GITHUB_PROFILE_REPOS_PER_PAGE: int = 100
    GITHUB_BEGINNER_PER_PAGE: int = 10

    # Qloo Insights API (cultural signal source)
    QLOO_API_KEY: Optional[str] = None
    QLOO_BASE_URL: str = "https://hackathon.api.qloo.com/v2"
    QLOO_TIMEOUT_SECONDS: float = 10.0
    QLOO_MAX_CATEGORIES: int = 8  # Max categories per insights request
    QLOO_TASTE_TAKE: int = 20
    QLOO_AFFINITY_TAKE: int = 15
    QLOO_AFFINITY_MAX_TAGS: int = 10

    # LLM generation
    LLM_PROVIDER: str = "anthropic"
    OPENAI_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    GEMINI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"
    GEMINI_MODEL: str = "gemini-2.5-flash-lite"
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_TOKENS: int = 2000
    LLM_TIMEOUT_SECONDS: float = 15.0

    # LLM retry policy (transient provider errors only)
    LLM_MAX_ATTEMPTS: int = 2
    LLM_BACKOFF_BASE_SECONDS: float = 0.5
    LLM_BACKOFF_MAX_SECONDS: float = 4.0

    # Recommendation pipeline
    RECOMMENDATION_PROMPT_CANDIDATES: int = 8
    RECOMMENDATION_HEURISTIC_COUNT: int = 3
    RECOMMENDATION_REQUIRE_GROUNDED_URLS: bool = True
    LINK_VALIDATION_CONCURRENCY: int = 10
    QUERY_MAX_LENGTH: int = 500

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
