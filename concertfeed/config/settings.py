"""Application settings using pydantic-settings."""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Literal

from apscheduler.triggers.cron import CronTrigger
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from concertfeed.core.exceptions import InvalidConfigError

DEFAULT_CLAIM_TTL_SECONDS = 3 * 3600


@lru_cache
def shortest_schedule_interval(schedule: str, samples: int = 48) -> float:
    """Smallest gap in seconds between consecutive fires of a crontab schedule."""
    trigger = CronTrigger.from_crontab(schedule, timezone=timezone.utc)
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    fire = trigger.get_next_fire_time(None, start)
    shortest = float("inf")
    for _ in range(samples):
        if fire is None:
            break
        following = trigger.get_next_fire_time(fire, fire + timedelta(seconds=1))
        if following is None:
            break
        shortest = min(shortest, (following - fire).total_seconds())
        fire = following
    return shortest


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase
    supabase_url: str = Field(alias="SUPABASE_URL")
    supabase_service_role_key: str = Field(alias="SUPABASE_SERVICE_ROLE_KEY")

    # Ticketmaster Discovery API
    ticketmaster_api_url: str = Field(
        default="https://app.ticketmaster.com", alias="TICKETMASTER_API_URL"
    )
    ticketmaster_api_key: str = Field(default="", alias="TICKETMASTER_API_KEY")

    # Feed sync
    feed_sync_countries: str = Field(default="US", alias="FEED_SYNC_COUNTRIES")
    feed_event_retention_days_past: int = Field(
        default=90, ge=0, alias="FEED_EVENT_RETENTION_DAYS_PAST"
    )
    feed_event_retention_months_future: int = Field(
        default=18, ge=1, alias="FEED_EVENT_RETENTION_MONTHS_FUTURE"
    )
    feed_sync_schedule: str = Field(default="0 */6 * * *", alias="FEED_SYNC_SCHEDULE")
    feed_sync_on_startup: bool = Field(default=False, alias="FEED_SYNC_ON_STARTUP")

    # Pacing, retries and deadlines
    feed_page_delay_seconds: float = Field(default=1.5, ge=0, alias="FEED_PAGE_DELAY_SECONDS")
    feed_fetch_max_retries: int = Field(default=3, ge=0, alias="FEED_FETCH_MAX_RETRIES")
    feed_fetch_backoff_seconds: float = Field(
        default=2.0, ge=0, alias="FEED_FETCH_BACKOFF_SECONDS"
    )
    feed_fetch_timeout_seconds: float = Field(
        default=30.0, gt=0, alias="FEED_FETCH_TIMEOUT_SECONDS"
    )
    feed_sync_pair_deadline_seconds: float | None = Field(
        default=None, gt=0, alias="FEED_SYNC_PAIR_DEADLINE_SECONDS"
    )
    feed_sync_concurrency: int = Field(default=1, ge=1, alias="FEED_SYNC_CONCURRENCY")
    # Unset: half the shortest schedule interval, capped at three hours, but
    # never below the pair deadline.
    feed_sync_claim_ttl_seconds: int | None = Field(
        default=None, ge=60, alias="FEED_SYNC_CLAIM_TTL_SECONDS"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(default="console", alias="LOG_FORMAT")
    log_file: str | None = Field(default=None, alias="LOG_FILE")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("feed_sync_countries")
    @classmethod
    def _validate_countries(cls, value: str) -> str:
        codes = [c.strip() for c in value.split(",") if c.strip()]
        if not codes:
            raise ValueError("at least one country code is required")
        bad = [c for c in codes if len(c) != 2 or not c.isalpha()]
        if bad:
            raise ValueError(f"invalid country codes: {', '.join(bad)}")
        return ",".join(c.upper() for c in codes)

    @field_validator("feed_sync_schedule")
    @classmethod
    def _validate_schedule(cls, value: str) -> str:
        CronTrigger.from_crontab(value)
        return value

    @model_validator(mode="after")
    def _validate_claim_ttl(self) -> "Settings":
        ttl = self.feed_sync_claim_ttl_seconds
        if ttl is None:
            return self
        interval = shortest_schedule_interval(self.feed_sync_schedule)
        if ttl >= interval:
            raise ValueError(
                f"FEED_SYNC_CLAIM_TTL_SECONDS ({ttl}) must be shorter than the "
                f"sync schedule interval ({interval:.0f}s)"
            )
        deadline = self.feed_sync_pair_deadline_seconds
        if deadline and ttl <= deadline:
            raise ValueError(
                f"FEED_SYNC_CLAIM_TTL_SECONDS ({ttl}) must exceed "
                f"FEED_SYNC_PAIR_DEADLINE_SECONDS ({deadline:g})"
            )
        return self

    @property
    def claim_ttl_seconds(self) -> int:
        """Age after which a running claim counts as abandoned."""
        if self.feed_sync_claim_ttl_seconds is not None:
            return self.feed_sync_claim_ttl_seconds
        ttl = min(DEFAULT_CLAIM_TTL_SECONDS, shortest_schedule_interval(self.feed_sync_schedule) // 2)
        if self.feed_sync_pair_deadline_seconds:
            ttl = max(ttl, self.feed_sync_pair_deadline_seconds + 60)
        return max(int(ttl), 60)

    @property
    def countries(self) -> list[str]:
        """Configured country codes, in declaration order."""
        return self.feed_sync_countries.split(",")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        InvalidConfigError: if any value fails validation, so a bad deploy
            fails at startup instead of mid-sync.
    """
    try:
        return Settings()
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise InvalidConfigError(f"Invalid configuration: {first.get('msg')}", field=field) from e
