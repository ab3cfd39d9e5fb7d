"""Configuration management for Digestarr."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import set_key
from pydantic import Field, PositiveInt, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_FILE = Path(".env")

WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

# Hard ceiling for trending lists; the endpoints return hundreds of entries.
MAX_TRENDING_ITEMS = 10


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    # Sonarr / Radarr
    sonarr_url: str = ""
    sonarr_api_key: SecretStr = SecretStr("")
    radarr_url: str = ""
    radarr_api_key: SecretStr = SecretStr("")

    # Trakt
    trakt_client_id: SecretStr = SecretStr("")
    show_trakt_anticipated_series: bool = False
    show_trakt_watched_series: bool = False
    show_trakt_anticipated_movies: bool = False
    show_trakt_watched_movies: bool = False
    trakt_anticipated_series_limit: int = Field(5, ge=1, le=MAX_TRENDING_ITEMS)
    trakt_watched_series_limit: int = Field(5, ge=1, le=MAX_TRENDING_ITEMS)
    trakt_anticipated_movies_limit: int = Field(5, ge=1, le=MAX_TRENDING_ITEMS)
    trakt_watched_movies_limit: int = Field(5, ge=1, le=MAX_TRENDING_ITEMS)

    # Email
    smtp_host: str = "smtp.mailgun.org"
    smtp_port: PositiveInt = 587
    smtp_user: str = ""
    smtp_pass: SecretStr = SecretStr("")
    from_email: str = ""
    from_name: str = "Digestarr"
    to_emails: Annotated[list[str], NoDecode] = []
    email_batch_size: PositiveInt = 10
    email_batch_delay: float = Field(1.0, ge=0)

    # Schedule
    timezone: str = "UTC"
    schedule_type: Literal["weekly", "monthly"] = "weekly"
    schedule_day: str = "Sun"
    schedule_time: str = "09:00"
    schedule_day_of_month: int = Field(1, ge=1, le=31)

    # Display
    show_posters: bool = True
    show_downloaded: bool = True
    show_series_overview: bool = False
    show_episode_overview: bool = False
    show_unmonitored: bool = False
    show_upgraded: bool = False
    show_series_ratings: bool = False
    dark_mode: bool = True

    # Customizable strings
    email_title: str = "Your Weekly Newsletter"
    monthly_email_title: str = "Your Monthly Newsletter"
    email_intro: str = "Here's what happened in your library and what's coming up."
    week_range_prefix: str = "Week of"
    monthly_week_range_prefix: str = "Month of"
    coming_this_week_heading: str = "Coming This Week"
    monthly_coming_this_week_heading: str = "Coming This Month"
    tv_shows_heading: str = "TV Shows"
    movies_heading: str = "Movies"
    no_shows_message: str = "No shows scheduled this week"
    no_movies_message: str = "No movies scheduled this week"
    downloaded_section_heading: str = "Downloaded Last Week"
    monthly_downloaded_section_heading: str = "Downloaded Last Month"
    no_downloaded_shows_message: str = "No shows downloaded this week"
    no_downloaded_movies_message: str = "No movies downloaded this week"
    trending_section_heading: str = "Trending"
    anticipated_series_heading: str = "Most Anticipated Shows"
    watched_series_heading: str = "Most Watched Shows This Week"
    anticipated_movies_heading: str = "Most Anticipated Movies"
    watched_movies_heading: str = "Most Watched Movies This Week"
    footer_text: str = "You're receiving this because you subscribed to updates."

    # Monthly variants of the period-specific strings
    monthly_no_shows_message: str = "No shows scheduled this month"
    monthly_no_movies_message: str = "No movies scheduled this month"
    monthly_no_downloaded_shows_message: str = "No shows downloaded this month"
    monthly_no_downloaded_movies_message: str = "No movies downloaded this month"
    monthly_watched_series_heading: str = "Most Watched Shows This Month"
    monthly_watched_movies_heading: str = "Most Watched Movies This Month"

    # Performance tuning
    api_page_size: PositiveInt = 1000
    max_retries: PositiveInt = 3
    preview_retries: PositiveInt = 2
    api_timeout: PositiveInt = 30  # Shared deadline for one run, in seconds

    # App settings
    webui_port: PositiveInt = 8080
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("sonarr_url", "radarr_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("to_emails", mode="before")
    @classmethod
    def split_emails(cls, v: str | list[str] | None) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [email.strip() for email in v if email and email.strip()]

    @field_validator("schedule_day")
    @classmethod
    def validate_schedule_day(cls, v: str) -> str:
        day = v.strip().capitalize()[:3]
        if day not in WEEKDAYS:
            raise ValueError(f"Schedule day must be one of {', '.join(WEEKDAYS)}")
        return day

    @field_validator("schedule_time")
    @classmethod
    def validate_schedule_time(cls, v: str) -> str:
        parts = v.strip().split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError("Schedule time must be in HH:MM format")
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError("Schedule time must be a valid 24h time")
        return f"{hour:02d}:{minute:02d}"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = str(v).strip().lower()
        return "warning" if level == "warn" else level

    @property
    def sonarr_configured(self) -> bool:
        return bool(self.sonarr_url and self.sonarr_api_key.get_secret_value())

    @property
    def radarr_configured(self) -> bool:
        return bool(self.radarr_url and self.radarr_api_key.get_secret_value())

    @property
    def trakt_configured(self) -> bool:
        return bool(self.trakt_client_id.get_secret_value())

    @property
    def email_configured(self) -> bool:
        return bool(
            self.smtp_host
            and self.smtp_user
            and self.smtp_pass.get_secret_value()
            and self.from_email
        )

    @property
    def tzinfo(self) -> ZoneInfo:
        """Resolve the configured timezone, falling back to UTC."""
        try:
            return ZoneInfo(self.timezone or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Invalid timezone '%s', using UTC", self.timezone)
            return ZoneInfo("UTC")

    @property
    def is_monthly(self) -> bool:
        return self.schedule_type == "monthly"

    @property
    def schedule_hour_minute(self) -> tuple[int, int]:
        hour, minute = self.schedule_time.split(":")
        return int(hour), int(minute)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached settings and load them again from disk."""
    get_settings.cache_clear()
    settings = get_settings()
    logger.info("Configuration reloaded from %s", ENV_FILE)
    return settings


def save_settings(updates: dict[str, str]) -> Settings:
    """Persist key/value updates to the env file and reload.

    Values are validated by building a Settings instance first so that a bad
    value never reaches the file.
    """
    Settings(**updates)

    ENV_FILE.touch(exist_ok=True)
    for key, value in updates.items():
        set_key(str(ENV_FILE), key.upper(), value, quote_mode="never")

    return reload_settings()

