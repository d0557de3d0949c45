"""Tests for settings loading and logging setup."""
import structlog

from dispositions.config import Settings, get_settings, reset_settings
from dispositions.observability import configure_logging


class TestSettings:

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("DISPOSITIONS_MAX_REPORT_SIZE_MB", "25")
        monkeypatch.setenv("DISPOSITIONS_RETRY_ATTEMPTS", "5")
        reset_settings()

        settings = get_settings()

        assert settings.max_report_size_mb == 25
        assert settings.retry_attempts == 5
        assert get_settings() is settings

    def test_postgres_scheme_is_rewritten(self):
        settings = Settings(database_url="postgres://user:pw@db:5432/dispositions")
        assert settings.sqlalchemy_url == "postgresql://user:pw@db:5432/dispositions"

    def test_sqlite_url_is_left_alone(self):
        assert Settings(database_url="sqlite:///./x.db").sqlalchemy_url == "sqlite:///./x.db"


class TestLogging:

    def test_json_logging_can_be_configured(self, monkeypatch):
        monkeypatch.setenv("DISPOSITIONS_LOG_FORMAT", "json")
        reset_settings()

        try:
            configure_logging()
            assert structlog.is_configured()
            structlog.get_logger("tests").info("configured", answer=42)
        finally:
            structlog.reset_defaults()
