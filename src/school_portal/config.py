"""Runtime settings for the School Portal backend."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = Path.cwd() / "school_portal.db"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """Settings shared by the store, cache, invite flow and scheduler."""

    database_path: Path = DEFAULT_DB_PATH
    pool_size: int = 5
    pool_timeout: float = 30.0  # seconds to wait for a pooled connection

    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = 300

    environment: str = "development"
    frontend_url: str = "http://localhost:3000"

    invite_secret: str = "change-me"
    invite_ttl_days: int = 7
    invite_daily_limit: int = 3
    # Teachers must be invited on one of these domains; empty means any.
    invite_allowed_domains: tuple[str, ...] = ("school.edu", "district.edu")

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    email_from: str = "no-reply@school.edu"

    schedule_hour: int = 0  # daily maintenance time, UTC
    schedule_minute: int = 0

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables (and a local ``.env``)."""
        domains = os.environ.get("INVITE_ALLOWED_DOMAINS")
        environment = os.environ.get("ENVIRONMENT", os.environ.get("ENV", "development")).lower()

        settings = cls(
            database_path=Path(os.environ.get("DATABASE_PATH", str(DEFAULT_DB_PATH))),
            pool_size=int(os.environ.get("DB_POOL_SIZE", "5")),
            pool_timeout=float(os.environ.get("DB_POOL_TIMEOUT", "30.0")),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            cache_ttl_seconds=int(os.environ.get("CACHE_TTL_SECONDS", "300")),
            environment=environment,
            frontend_url=os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
            invite_secret=os.environ.get("INVITE_SECRET", "change-me"),
            invite_ttl_days=int(os.environ.get("INVITE_TTL_DAYS", "7")),
            invite_daily_limit=int(os.environ.get("INVITE_DAILY_LIMIT", "3")),
            smtp_host=os.environ.get("SMTP_HOST"),
            smtp_port=int(os.environ.get("SMTP_PORT", "587")),
            smtp_username=os.environ.get("SMTP_USERNAME"),
            smtp_password=os.environ.get("SMTP_PASSWORD"),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
            email_from=os.environ.get("EMAIL_FROM", "no-reply@school.edu"),
            schedule_hour=int(os.environ.get("SCHEDULE_HOUR", "0")),
            schedule_minute=int(os.environ.get("SCHEDULE_MINUTE", "0")),
        )
        if domains is not None:
            settings.invite_allowed_domains = tuple(
                d.strip().lower() for d in domains.split(",") if d.strip()
            )

        if settings.is_production and settings.invite_secret == "change-me":
            raise ValueError("INVITE_SECRET environment variable is required in production")

        return settings

    @property
    def is_production(self) -> bool:
        return self.environment in ("prod", "production")

    @property
    def sends_email(self) -> bool:
        """Outside production, invite emails are logged instead of sent."""
        return self.is_production and bool(self.smtp_host)

    @property
    def signup_url(self) -> str:
        return f"{self.frontend_url}/auth/signup"
