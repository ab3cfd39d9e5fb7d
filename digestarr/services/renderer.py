"""Render a finished AggregateResult to the newsletter HTML."""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from digestarr.core.config import Settings
from digestarr.models.media import AggregateResult

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
TEMPLATES_DIR = BASE_DIR / "templates"
EMAIL_TEMPLATE = "email.html"

THEMES = {
    "dark": {
        "bg": "#14161a",
        "card": "#1f232a",
        "text": "#e6e8eb",
        "muted": "#9aa1ab",
        "accent": "#35c5f4",
    },
    "light": {
        "bg": "#f4f5f7",
        "card": "#ffffff",
        "text": "#1d2128",
        "muted": "#5f6673",
        "accent": "#1a8fc4",
    },
}


def format_date_with_day(value: str | None) -> str:
    """Format an ISO date or RFC 3339 timestamp as "Wednesday, November 19, 2025"."""
    if not value:
        return "Date TBA"
    try:
        parsed: date = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = date.fromisoformat(value[:10])
        except ValueError:
            return value
    return f"{parsed:%A, %B} {parsed.day}, {parsed.year}"


def truncate_text(value: str | None, length: int = 200) -> str:
    if not value or len(value) <= length:
        return value or ""
    return value[:length] + "..."


def _build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["format_date_with_day"] = format_date_with_day
    env.filters["truncate_text"] = truncate_text
    return env


environment = _build_environment()


def period_strings(settings: Settings) -> dict[str, str]:
    """Headings and messages for the configured schedule type."""
    monthly = settings.is_monthly

    def choose(weekly_value: str, monthly_value: str) -> str:
        return monthly_value if monthly else weekly_value

    return {
        "email_title": choose(settings.email_title, settings.monthly_email_title),
        "week_range_prefix": choose(
            settings.week_range_prefix, settings.monthly_week_range_prefix
        ),
        "coming_heading": choose(
            settings.coming_this_week_heading,
            settings.monthly_coming_this_week_heading,
        ),
        "downloaded_heading": choose(
            settings.downloaded_section_heading,
            settings.monthly_downloaded_section_heading,
        ),
        "no_shows_message": choose(
            settings.no_shows_message, settings.monthly_no_shows_message
        ),
        "no_movies_message": choose(
            settings.no_movies_message, settings.monthly_no_movies_message
        ),
        "no_downloaded_shows_message": choose(
            settings.no_downloaded_shows_message,
            settings.monthly_no_downloaded_shows_message,
        ),
        "no_downloaded_movies_message": choose(
            settings.no_downloaded_movies_message,
            settings.monthly_no_downloaded_movies_message,
        ),
        "watched_series_heading": choose(
            settings.watched_series_heading, settings.monthly_watched_series_heading
        ),
        "watched_movies_heading": choose(
            settings.watched_movies_heading, settings.monthly_watched_movies_heading
        ),
    }


def build_context(result: AggregateResult, settings: Settings) -> dict[str, Any]:
    return {
        "data": result,
        "strings": period_strings(settings),
        "email_intro": settings.email_intro,
        "tv_shows_heading": settings.tv_shows_heading,
        "movies_heading": settings.movies_heading,
        "trending_heading": settings.trending_section_heading,
        "anticipated_series_heading": settings.anticipated_series_heading,
        "anticipated_movies_heading": settings.anticipated_movies_heading,
        "footer_text": settings.footer_text,
        "show_posters": settings.show_posters,
        "show_downloaded": settings.show_downloaded,
        "show_series_overview": settings.show_series_overview,
        "show_episode_overview": settings.show_episode_overview,
        "show_series_ratings": settings.show_series_ratings,
        "theme": THEMES["dark" if settings.dark_mode else "light"],
        "show_trakt_anticipated_series": settings.show_trakt_anticipated_series,
        "show_trakt_watched_series": settings.show_trakt_watched_series,
        "show_trakt_anticipated_movies": settings.show_trakt_anticipated_movies,
        "show_trakt_watched_movies": settings.show_trakt_watched_movies,
    }


def render_newsletter(result: AggregateResult, settings: Settings) -> str:
    """Render the email body. The result is read once and never modified."""
    template = environment.get_template(EMAIL_TEMPLATE)
    html = template.render(**build_context(result, settings))
    logger.info("Rendered newsletter (%d bytes)", len(html))
    return html


def build_subject(result: AggregateResult, settings: Settings) -> str:
    title = period_strings(settings)["email_title"]
    return f"{title} - {result.week_end}"
