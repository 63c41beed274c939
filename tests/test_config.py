"""
Tests for settings loading.
"""

import os

import pytest

from feedposts.config import load_settings
from feedposts.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's environment and .env file out of these tests."""
    for name in list(os.environ):
        if name.startswith("FEEDPOSTS_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


class TestSettings:
    """Tests for Settings and load_settings()."""

    def test_defaults(self):
        settings = load_settings()

        assert settings.workers == 10
        assert settings.dispatch_rate_per_second == 10
        assert settings.page_limit == 100
        assert settings.db_pool_size == 90
        assert settings.invalid_cursor_markers == ["null"]
        assert settings.database_url.startswith("sqlite+aiosqlite://")

    def test_queue_size_follows_workers(self):
        assert load_settings(workers=4).queue_size == 4
        assert load_settings(workers=4, queue_size=20).queue_size == 20

    @pytest.mark.parametrize("overrides", [
        {"workers": 0},
        {"dispatch_rate_per_second": -1},
        {"page_limit": 101},
        {"page_limit": 0},
        {"queue_size": 0},
        {"log_level": "LOUD"},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError):
            load_settings(**overrides)

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("FEEDPOSTS_WORKERS", "3")
        monkeypatch.setenv("FEEDPOSTS_INVALID_CURSOR_MARKERS", '["null", "undefined"]')
        monkeypatch.setenv("FEEDPOSTS_BSKY_IDENTIFIER", "me.bsky.social")

        settings = load_settings()

        assert settings.workers == 3
        assert settings.queue_size == 3
        assert settings.invalid_cursor_markers == ["null", "undefined"]
        assert settings.bsky_identifier == "me.bsky.social"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("FEEDPOSTS_PAGE_LIMIT=50\n")

        assert load_settings().page_limit == 50
