import pytest

from digestarr.core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Run every test in its own directory so .env and .stats.json stay local."""
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def make_settings():
    """Build Settings from keyword overrides only, ignoring any .env file."""

    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make
