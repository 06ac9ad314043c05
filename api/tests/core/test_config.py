"""Unit tests for core.config module.

Tests cover:
- Settings model_validator checks
- is_sqlite property
- get_settings / clear_settings_cache lru_cache behavior
"""

import pytest
from pydantic import ValidationError

from core.config import Settings, clear_settings_cache, get_settings


@pytest.mark.unit
class TestSettingsValidation:
    def test_requires_database_url(self):
        with pytest.raises(ValidationError, match="Database configuration"):
            Settings(database_url="")

    def test_rejects_inverted_year_range(self):
        with pytest.raises(ValidationError, match="MIN_COMPLETION_YEAR"):
            Settings(
                database_url="sqlite+aiosqlite:///:memory:",
                min_completion_year=2050,
                max_completion_year=2000,
            )

    def test_defaults(self):
        settings = Settings(database_url="postgresql+asyncpg://localhost/habits")

        assert settings.auth_user_header == "X-User-Id"
        assert settings.min_completion_year == 2000
        assert settings.max_completion_year == 2100
        assert settings.is_sqlite is False

    def test_is_sqlite(self):
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:")

        assert settings.is_sqlite is True

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
        monkeypatch.setenv("STREAK_TOP_RUNS_LIMIT", "3")

        assert Settings().streak_top_runs_limit == 3

    def test_settings_are_frozen(self):
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:")

        with pytest.raises(ValidationError):
            settings.debug = True


@pytest.mark.unit
class TestSettingsCache:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_settings_cache_picks_up_env(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("LEADERBOARD_LIMIT", "7")

        clear_settings_cache()

        second = get_settings()
        assert second is not first
        assert second.leaderboard_limit == 7
