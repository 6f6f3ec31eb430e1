"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, str(default))
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, str(default))
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    # Server settings
    host: str
    port: int
    database_url: str
    admin_token: str | None
    log_level: str

    # Provider settings
    tmdb_bearer_token: str | None
    tmdb_language: str
    google_books_api_key: str | None
    provider_timeout_seconds: float
    provider_sync_enabled: bool
    provider_sync_interval_hours: int

    # RSS ingestion settings
    rss_feed_timeout_seconds: float
    rss_backfill_timeout_seconds: float
    rss_backfill_budget_seconds: float
    rss_freshness_days: int
    rss_max_feeds: int
    rss_per_feed_limit: int
    rss_ingest_enabled: bool
    rss_ingest_interval_hours: int

    # Recommendation settings
    recs_default_limit: int
    recs_candidate_limit: int
    scoring_config_path: str | None

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        host = os.getenv("HOST", "0.0.0.0")
        port_str = os.getenv("PORT", "8000")
        try:
            port = int(port_str)
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got: {port_str}")

        database_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./kivaw.db")
        admin_token = os.getenv("ADMIN_TOKEN") or None
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        # Providers
        tmdb_bearer_token = os.getenv("TMDB_BEARER_TOKEN") or None
        tmdb_language = os.getenv("TMDB_LANGUAGE", "en-US")
        google_books_api_key = os.getenv("GOOGLE_BOOKS_API_KEY") or None
        provider_timeout_seconds = _env_float("PROVIDER_TIMEOUT_SECONDS", 9.0)
        provider_sync_enabled = _env_bool("PROVIDER_SYNC_ENABLED", True)
        provider_sync_interval_hours = _env_int("PROVIDER_SYNC_INTERVAL_HOURS", 12)

        # RSS
        rss_feed_timeout_seconds = _env_float("RSS_FEED_TIMEOUT_SECONDS", 15.0)
        rss_backfill_timeout_seconds = _env_float("RSS_BACKFILL_TIMEOUT_SECONDS", 5.0)
        rss_backfill_budget_seconds = _env_float("RSS_BACKFILL_BUDGET_SECONDS", 30.0)
        rss_freshness_days = _env_int("RSS_FRESHNESS_DAYS", 7)
        if rss_freshness_days < 1:
            raise ConfigurationError(
                f"RSS_FRESHNESS_DAYS must be positive, got: {rss_freshness_days}"
            )
        rss_max_feeds = _env_int("RSS_MAX_FEEDS", 25)
        rss_per_feed_limit = _env_int("RSS_PER_FEED_LIMIT", 100)
        rss_ingest_enabled = _env_bool("RSS_INGEST_ENABLED", True)
        rss_ingest_interval_hours = _env_int("RSS_INGEST_INTERVAL_HOURS", 3)

        # Recommendations
        recs_default_limit = _env_int("RECS_DEFAULT_LIMIT", 12)
        recs_candidate_limit = _env_int("RECS_CANDIDATE_LIMIT", 200)
        scoring_config_path = os.getenv("SCORING_CONFIG_PATH") or None
        if scoring_config_path and not os.path.exists(scoring_config_path):
            raise ConfigurationError(
                f"SCORING_CONFIG_PATH points to a missing file: {scoring_config_path}"
            )

        return cls(
            host=host,
            port=port,
            database_url=database_url,
            admin_token=admin_token,
            log_level=log_level,
            tmdb_bearer_token=tmdb_bearer_token,
            tmdb_language=tmdb_language,
            google_books_api_key=google_books_api_key,
            provider_timeout_seconds=provider_timeout_seconds,
            provider_sync_enabled=provider_sync_enabled,
            provider_sync_interval_hours=provider_sync_interval_hours,
            rss_feed_timeout_seconds=rss_feed_timeout_seconds,
            rss_backfill_timeout_seconds=rss_backfill_timeout_seconds,
            rss_backfill_budget_seconds=rss_backfill_budget_seconds,
            rss_freshness_days=rss_freshness_days,
            rss_max_feeds=rss_max_feeds,
            rss_per_feed_limit=rss_per_feed_limit,
            rss_ingest_enabled=rss_ingest_enabled,
            rss_ingest_interval_hours=rss_ingest_interval_hours,
            recs_default_limit=recs_default_limit,
            recs_candidate_limit=recs_candidate_limit,
            scoring_config_path=scoring_config_path,
        )


config = Config.from_env()
