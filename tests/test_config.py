"""
Tests for settings loading
"""

import pytest
from pydantic import ValidationError

from progress_engine.config import Settings, get_database_path


class TestSettings:
    """Test Settings defaults and environment overrides"""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings()

        assert settings.database_url == "sqlite:///data/progress.db"
        assert settings.default_learning_direction == "ru-it"
        assert settings.mastered_level_threshold == 4
        assert settings.review_history_enabled is True
        assert settings.sync_retry_interval == 30.0

    def test_environment_override(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MASTERED_LEVEL_THRESHOLD", "5")
        monkeypatch.setenv("SYNC_RETRY_INTERVAL", "2.5")
        monkeypatch.setenv("REVIEW_HISTORY_ENABLED", "false")

        settings = Settings()

        assert settings.mastered_level_threshold == 5
        assert settings.sync_retry_interval == 2.5
        assert settings.review_history_enabled is False

    def test_unknown_variables_ignored(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("TIMEZONE", "Europe/Rome")

        settings = Settings()

        assert not hasattr(settings, "debug")
        assert not hasattr(settings, "timezone")

    def test_invalid_threshold(self):
        with pytest.raises(ValidationError):
            Settings(mastered_level_threshold=6)

    def test_negative_retry_interval(self):
        with pytest.raises(ValidationError):
            Settings(sync_retry_interval=-1)


class TestDatabasePath:
    """Test database URL parsing"""

    def test_sqlite_url(self):
        assert get_database_path("sqlite:///tmp/test.db") == "tmp/test.db"
        assert get_database_path("sqlite:////var/data/test.db") == "/var/data/test.db"

    def test_unknown_scheme_falls_back(self):
        assert get_database_path("postgresql://localhost/progress") == "data/progress.db"
