"""Configuration settings for Sesame."""

import json
import os
import secrets
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")
STORE_BACKENDS = ("memory", "redis")


class ConfigurationError(RuntimeError):
    """Raised at startup when the settings cannot produce a working service."""


class Settings:
    """Application settings loaded from environment variables.

    Durations are expressed in milliseconds, like the timestamps kept in the store.
    """

    # Store
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "memory")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Access token (JWT)
    ACCESS_TOKEN_SECRET: str = os.getenv("ACCESS_TOKEN_SECRET", "")
    ACCESS_TOKEN_ALGORITHM: str = os.getenv("ACCESS_TOKEN_ALGORITHM", "HS256")
    ACCESS_TOKEN_AUDIENCE: str = os.getenv("ACCESS_TOKEN_AUDIENCE", "sesame")
    ACCESS_TOKEN_ISSUER: str = os.getenv("ACCESS_TOKEN_ISSUER", "sesame")
    ACCESS_TOKEN_EXPIRES_IN: int = int(os.getenv("ACCESS_TOKEN_EXPIRES_IN", str(15 * 60 * 1000)))

    # Refresh / reset tokens
    REFRESH_TOKEN_EXPIRES_IN: int = int(os.getenv("REFRESH_TOKEN_EXPIRES_IN", str(7 * 24 * 60 * 60 * 1000)))
    RESET_PASSWORD_TOKEN_EXPIRES_IN: int = int(os.getenv("RESET_PASSWORD_TOKEN_EXPIRES_IN", str(60 * 60 * 1000)))

    # Cookies
    COOKIE_SECURE: bool = os.getenv("COOKIE_SECURE", "true").lower() == "true"
    COOKIE_SAMESITE: str = os.getenv("COOKIE_SAMESITE", "none")
    COOKIE_PATH: str = os.getenv("COOKIE_PATH", "/api/")

    # Frontend / mail
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", '["http://localhost:3000"]')
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    MAIL_FROM: str = os.getenv("MAIL_FROM", "no-reply@localhost")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_RETENTION_SECONDS: int = int(os.getenv("LOG_RETENTION_SECONDS", str(60 * 60 * 24 * 30)))

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    SEED_USERS: bool = os.getenv("SEED_USERS", "false").lower() == "true"

    def __init__(self, **overrides) -> None:
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise ConfigurationError(f"Unknown setting {key}")
            setattr(self, key, value)
        if not self.ACCESS_TOKEN_SECRET:
            self._generated_secret = True
            self.ACCESS_TOKEN_SECRET = secrets.token_urlsafe(32)
        else:
            self._generated_secret = False

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS JSON string into a list."""
        return json.loads(self.CORS_ORIGINS)

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        warnings = []
        if self._generated_secret:
            warnings.append("ACCESS_TOKEN_SECRET is not set - using auto-generated key (not persistent across restarts)")
        if self.STORE_BACKEND == "memory" and self.APP_ENV == "production":
            warnings.append("STORE_BACKEND is 'memory' in production - users are lost on restart")
        if self.COOKIE_SAMESITE == "none" and not self.COOKIE_SECURE:
            warnings.append("COOKIE_SAMESITE=none requires COOKIE_SECURE=true in browsers")
        return warnings

    def check(self) -> None:
        """Raise ConfigurationError for settings the service cannot run with."""
        if self.STORE_BACKEND not in STORE_BACKENDS:
            raise ConfigurationError(f"Unknown STORE_BACKEND {self.STORE_BACKEND!r}")
        if self.ACCESS_TOKEN_ALGORITHM not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported ACCESS_TOKEN_ALGORITHM {self.ACCESS_TOKEN_ALGORITHM!r}")
        for name in ("ACCESS_TOKEN_EXPIRES_IN", "REFRESH_TOKEN_EXPIRES_IN", "RESET_PASSWORD_TOKEN_EXPIRES_IN"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be a positive number of milliseconds")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
