"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from starter.core.security import check_password_strength


class ConfigError(RuntimeError):
    """Raised at startup when required configuration is missing or invalid."""


@dataclass(frozen=True)
class AuthConfig:
    """Authentication-related configuration."""

    access_secret: str
    refresh_secret: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str
    bcrypt_rounds: int = 12
    admin_email: str = ""
    admin_username: str = ""
    admin_password: str = ""


@dataclass(frozen=True)
class DatabaseConfig:
    """Relational database connection settings."""

    url: str
    echo: bool = False


@dataclass(frozen=True)
class SchedulerConfig:
    """Scheduled maintenance job settings."""

    enabled: bool
    token_cleanup_interval_seconds: int


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    database: DatabaseConfig
    scheduler: SchedulerConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment.

        Token secrets have no defaults: a missing or shared secret raises
        :class:`ConfigError` here, before the app accepts any request.
        """
        access_secret = os.getenv("JWT_ACCESS_SECRET", "").strip()
        refresh_secret = os.getenv("JWT_REFRESH_SECRET", "").strip()
        if not access_secret or not refresh_secret:
            raise ConfigError(
                "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be set "
                "to non-empty values before starting the service."
            )
        if access_secret == refresh_secret:
            raise ConfigError(
                "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ."
            )

        access_ttl = int(os.getenv("JWT_ACCESS_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("JWT_REFRESH_TTL_SECONDS", "604800"))
        if access_ttl <= 0 or refresh_ttl <= 0:
            raise ConfigError("Token lifetimes must be positive.")
        issuer = os.getenv("AUTH_ISSUER", "starter-api").strip() or "starter-api"
        bcrypt_rounds = int(os.getenv("AUTH_BCRYPT_ROUNDS", "12"))
        admin_email = os.getenv("AUTH_ADMIN_EMAIL", "").strip()
        admin_username = os.getenv("AUTH_ADMIN_USERNAME", "").strip()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", "").strip()
        if admin_password:
            try:
                check_password_strength(admin_password)
            except ValueError as exc:
                raise ConfigError(f"AUTH_ADMIN_PASSWORD is not acceptable: {exc}") from None

        database_url = (
            os.getenv("DATABASE_URL", "").strip() or "sqlite:///runtime/starter.db"
        )
        database_echo = _env_flag("DATABASE_ECHO", "0")

        scheduler_enabled = _env_flag("SCHEDULER_ENABLED", "1")
        cleanup_interval = int(os.getenv("TOKEN_CLEANUP_INTERVAL_SECONDS", "3600"))

        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))

        return AppConfig(
            auth=AuthConfig(
                access_secret=access_secret,
                refresh_secret=refresh_secret,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
                bcrypt_rounds=bcrypt_rounds,
                admin_email=admin_email,
                admin_username=admin_username,
                admin_password=admin_password,
            ),
            database=DatabaseConfig(url=database_url, echo=database_echo),
            scheduler=SchedulerConfig(
                enabled=scheduler_enabled,
                token_cleanup_interval_seconds=cleanup_interval,
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
            ),
        )
