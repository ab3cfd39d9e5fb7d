from digestarr.models.media import AggregateResult, Episode, Movie, SeriesGroup, TrendingItem
from digestarr.services.renderer import (
    build_subject,
    format_date_with_day,
    period_strings,
    render_newsletter,
    truncate_text,
)


def result(**overrides):
    data = {
        "week_start": "November 12, 2025",
        "week_end": "November 19, 2025",
        "upcoming_start": "November 19, 2025",
        "upcoming_end": "November 26, 2025",
    }
    data.update(overrides)
    return AggregateResult(**data)


def test_format_date_with_day():
    assert format_date_with_day("2025-11-19") == "Wednesday, November 19, 2025"
    assert format_date_with_day("2025-11-19T20:00:00Z") == "Wednesday, November 19, 2025"
    assert format_date_with_day("") == "Date TBA"
    assert format_date_with_day(None) == "Date TBA"
    assert format_date_with_day("TBA") == "TBA"


def test_truncate_text():
    assert truncate_text("short", 10) == "short"
    assert truncate_text("a" * 12, 10) == "a" * 10 + "..."
    assert truncate_text(None) == ""


def test_period_strings_follow_schedule_type(make_settings):
    weekly = period_strings(make_settings())
    monthly = period_strings(make_settings(schedule_type="monthly"))

    assert weekly["coming_heading"] == "Coming This Week"
    assert monthly["coming_heading"] == "Coming This Month"
    assert monthly["email_title"] == "Your Monthly Newsletter"
    assert monthly["no_downloaded_movies_message"] == "No movies downloaded this month"


def test_build_subject(make_settings):
    assert build_subject(result(), make_settings()) == (
        "Your Weekly Newsletter - November 19, 2025"
    )


def test_render_newsletter_sections(make_settings):
    settings = make_settings(show_trakt_watched_movies=True)
    episode = Episode(
        title="Hello, Ms. Cobel",
        series_title="Severance",
        season=2,
        episode=1,
        release_date="2025-01-17",
    )
    data = result(
        upcoming_series=[
            SeriesGroup(series_title="Severance", episodes=[episode], poster_url="http://img/s.jpg")
        ],
        downloaded_movies=[
            Movie(title="Dune: Part Two", year=2024, release_date="2024-02-27", imdb_id="tt15239678")
        ],
        trakt_watched_movies=[TrendingItem(title="Wicked", year=2024, in_library=True)],
    )

    html = render_newsletter(data, settings)

    assert "Your Weekly Newsletter" in html
    assert "November 12, 2025 - November 19, 2025" in html
    assert "Severance" in html
    assert "S02E01" in html
    assert "Friday, January 17, 2025" in html
    assert "http://img/s.jpg" in html
    assert "https://www.imdb.com/title/tt15239678/" in html
    assert "Wicked" in html
    assert "No movies scheduled this week" in html
    assert "No shows downloaded this week" in html


def test_render_respects_toggles(make_settings):
    settings = make_settings(show_posters=False, show_downloaded=False)
    data = result(
        upcoming_movies=[Movie(title="Wicked", poster_url="http://img/w.jpg")],
        downloaded_movies=[Movie(title="Hidden Download")],
        trakt_watched_movies=[TrendingItem(title="Not Enabled")],
    )

    html = render_newsletter(data, settings)

    assert "Wicked" in html
    assert "http://img/w.jpg" not in html
    assert "Hidden Download" not in html
    assert "Not Enabled" not in html


def test_render_escapes_html(make_settings):
    data = result(upcoming_movies=[Movie(title="<script>alert(1)</script>")])
    html = render_newsletter(data, make_settings())
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html


def test_monthly_header_shows_single_month(make_settings):
    settings = make_settings(schedule_type="monthly")
    data = result(week_start="November 2025", week_end="November 2025")

    html = render_newsletter(data, settings)

    assert "Month of" in html
    assert "November 2025 - November 2025" not in html
    assert build_subject(data, settings) == "Your Monthly Newsletter - November 2025"
