"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from school_portal.config import Settings

pytestmark = pytest.mark.unit

ENV_VARS = (
    "DATABASE_PATH",
    "DB_POOL_SIZE",
    "REDIS_URL",
    "CACHE_TTL_SECONDS",
    "ENVIRONMENT",
    "ENV",
    "FRONTEND_URL",
    "INVITE_SECRET",
    "INVITE_TTL_DAYS",
    "INVITE_DAILY_LIMIT",
    "INVITE_ALLOWED_DOMAINS",
    "SMTP_HOST",
    "SMTP_USE_TLS",
    "SCHEDULE_HOUR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env()
        assert settings.pool_size == 5
        assert settings.cache_ttl_seconds == 300
        assert settings.invite_ttl_days == 7
        assert settings.invite_daily_limit == 3
        assert settings.invite_allowed_domains == ("school.edu", "district.edu")
        assert settings.is_production is False

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("DB_POOL_SIZE", "2")
        monkeypatch.setenv("FRONTEND_URL", "https://portal.school.edu/")
        monkeypatch.setenv("INVITE_ALLOWED_DOMAINS", " Academy.org , ")
        monkeypatch.setenv("SMTP_USE_TLS", "false")
        monkeypatch.setenv("SCHEDULE_HOUR", "3")

        settings = Settings.from_env()

        assert settings.database_path == Path(tmp_path / "x.db")
        assert settings.pool_size == 2
        assert settings.signup_url == "https://portal.school.edu/auth/signup"
        assert settings.invite_allowed_domains == ("academy.org",)
        assert settings.smtp_use_tls is False
        assert settings.schedule_hour == 3

    def test_production_requires_secret(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        with pytest.raises(ValueError, match="INVITE_SECRET"):
            Settings.from_env()

    def test_production_with_secret(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("INVITE_SECRET", "s3cret")
        settings = Settings.from_env()
        assert settings.is_production
        assert settings.sends_email is False  # no SMTP_HOST

    def test_sends_email_needs_production_and_host(self):
        assert Settings(environment="production", smtp_host="smtp.school.edu").sends_email
        assert not Settings(environment="development", smtp_host="smtp.school.edu").sends_email
