from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables and an optional .env file.

    Only process-level knobs live here; scoring constants belong to
    ``MatchingConfig`` and are derived from these via ``from_settings``.
    """

    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: selects the log renderer."""

    DEBUG: bool = False
    """Enable per-candidate debug logging in the scorer."""

    # Matching engine
    MATCHING_MAX_CANDIDATES: int = 10
    """Number of ranked candidates returned per search."""

    MATCHING_PROVIDER_TIMEOUT_SECONDS: float = 2.0
    """Upper bound for each reputation / geo collaborator call."""

    MATCHING_DEFAULT_RISK_SCORE: int = 50
    """Reputation score substituted when a lookup fails or times out."""

    MATCHING_AVG_MATCH_TIME_MINUTES: float = 30.0
    """Average minutes to match, used for queue wait-time estimates."""

    MATCHING_ALGORITHM_VERSION: str = "2.0.0"
    """Reported in search metadata."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance so .env is parsed once per process."""
    return Settings()
