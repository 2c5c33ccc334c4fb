"""
Blaze Backend — Application Configuration
==========================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; validated before app starts.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


DEFAULT_JWT_SECRET = "change-me"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have development defaults. Production deployments MUST
    override the security-sensitive values (JWT_SECRET, VAPID keys,
    CONTROLLER_API_KEY).
    """

    # ── Database ──────────────────────────────────────────────────────────
    # Format: sqlite+aiosqlite:///./blaze.db or postgresql+asyncpg://user:pw@host/db
    database_url: str = Field(
        default="sqlite+aiosqlite:///./blaze.db",
        description="Async SQLAlchemy connection URL"
    )

    # Pool sizing applies to server databases only; SQLite ignores it
    db_pool_size: int = Field(default=20, ge=5, le=100)
    db_max_overflow: int = Field(default=10, ge=0, le=50)
    db_pool_pre_ping: bool = Field(default=True)

    # Startup connection attempts before giving up (tenacity)
    db_connect_attempts: int = Field(default=5, ge=1, le=20)
    db_connect_wait: int = Field(default=2, ge=1, le=30)

    # ── Web Push (VAPID) ──────────────────────────────────────────────────
    # Generate a key pair with `vapid --gen` (py-vapid, installed with pywebpush)
    vapid_public_key: str = Field(default="")
    vapid_private_key: str = Field(default="")
    vapid_email: str = Field(default="admin@example.com")

    # Seconds the push service keeps an undelivered message
    push_ttl: int = Field(default=60, ge=0, le=2_419_200)
    # Seconds to wait on the push service per device
    push_timeout: float = Field(default=10.0, gt=0, le=60)

    # ── Authentication ────────────────────────────────────────────────────
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET)
    jwt_algorithm: str = Field(default="HS256")
    jwt_expire_minutes: int = Field(default=60, ge=1, le=60 * 24 * 30)

    # Shared secret for alarm controllers; empty disables the check
    controller_api_key: str = Field(default="")

    # ── Confirmation Rendezvous ───────────────────────────────────────────
    # How long GET /api/confirm waits for the user's device to answer.
    # Must cover a device round-trip but keep the controller's request bounded.
    confirmation_timeout: float = Field(default=15.0, gt=0, le=120)

    # ── Demo Data ─────────────────────────────────────────────────────────
    # On startup with an empty users table: one admin account and one
    # unassigned alarm, so a fresh install can be exercised end to end
    seed_demo_data: bool = Field(default=False)
    seed_admin_username: str = Field(default="Blaze", min_length=1)
    seed_admin_password: str = Field(default="1234", min_length=1)
    seed_admin_email: str = Field(default="admin@example.com")
    seed_alarm_serial: str = Field(default="1", min_length=1)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated URLs (parsed by property below)
    cors_origins: str = Field(default="http://localhost:4000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=4000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Rate Limiting ─────────────────────────────────────────────────────
    rate_limit_requests: int = Field(default=1000, ge=10, le=100000)
    rate_limit_window: int = Field(default=3600, ge=60, le=86400)  # seconds

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def push_configured(self) -> bool:
        return bool(self.vapid_public_key and self.vapid_private_key)

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        How:   Collects every problem and raises one ValueError listing them.
        """
        errors = []
        if not self.push_configured:
            errors.append(
                "VAPID_PUBLIC_KEY / VAPID_PRIVATE_KEY are not set. "
                "Push notifications cannot be delivered."
            )
        if self.jwt_secret == DEFAULT_JWT_SECRET:
            errors.append("JWT_SECRET is still the development default.")
        if self.seed_demo_data and self.seed_admin_password == "1234":
            errors.append("SEED_DEMO_DATA is on with the default admin password.")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Singleton instance — imported throughout the application
settings = Settings()
