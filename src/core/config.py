"""Configuration management for the deal engine.

All configuration is loaded from environment variables and/or .env file.
Secrets (token signing, phone hashing, phone encryption) have no usable
production default and must be provided through the environment.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root detection
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = PROJECT_ROOT / ".env"

DATABASE_FILE = PROJECT_ROOT / "deal_engine.db"
ABSOLUTE_DATABASE_URL = f"sqlite:///{DATABASE_FILE.as_posix()}"


def _resolve_database_url(url: str) -> str:
    """
    Convert relative SQLite paths to absolute paths based on PROJECT_ROOT.

    In-memory URLs and non-SQLite URLs are returned unchanged.
    """
    if not url.startswith("sqlite:///"):
        return url

    path_part = url.replace("sqlite:///", "")
    if path_part == ":memory:" or path_part == "":
        return url

    if path_part.startswith("./") or (not path_part.startswith("/") and ":" not in path_part):
        if path_part.startswith("./"):
            path_part = path_part[2:]
        absolute_path = PROJECT_ROOT / path_part
        return f"sqlite:///{absolute_path.as_posix()}"

    return url


class Settings(BaseSettings):
    """
    Runtime configuration powered by environment variables and .env overrides.

    All settings can be configured via:
    1. Environment variables (highest priority)
    2. .env file in project root (loaded automatically)
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    database_url: str = Field(
        default=ABSOLUTE_DATABASE_URL,
        alias="DATABASE_URL",
        description="SQLAlchemy connection string.",
    )
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE", ge=1)
    db_max_overflow: int = Field(default=10, alias="DB_MAX_OVERFLOW", ge=0)
    db_pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT", ge=1)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------
    jwt_secret_key: str = Field(
        default="dev-only-insecure-jwt-secret",
        alias="JWT_SECRET_KEY",
        description="HS256 signing key for bearer tokens.",
    )
    jwt_access_token_expire_minutes: int = Field(
        default=60, alias="JWT_ACCESS_TOKEN_EXPIRE_MINUTES", ge=1
    )

    # -------------------------------------------------------------------------
    # Phone privacy (TCPA)
    # -------------------------------------------------------------------------
    phone_hash_key: Optional[str] = Field(
        default=None,
        alias="PHONE_HASH_KEY",
        description="HMAC key for the one-way phone lookup hash. Must never change once data exists.",
    )
    phone_encryption_key: Optional[str] = Field(
        default=None,
        alias="PHONE_ENCRYPTION_KEY",
        description="AES-256 key as 64 hex characters.",
    )
    default_phone_region: str = Field(default="US", alias="DEFAULT_PHONE_REGION")
    consent_retention_years: int = Field(default=4, alias="CONSENT_RETENTION_YEARS", ge=4)

    # -------------------------------------------------------------------------
    # Qualification & lifecycle
    # -------------------------------------------------------------------------
    qualification_min_score: int = Field(
        default=0,
        alias="QUALIFICATION_MIN_SCORE",
        ge=0,
        description="Minimum score for a passing deal to be QUALIFIED rather than ANALYZING.",
    )
    transition_max_attempts: int = Field(default=3, alias="TRANSITION_MAX_ATTEMPTS", ge=1, le=10)

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")  # "text" or "json"
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    environment: str = Field(default="local", alias="ENVIRONMENT")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT", ge=1)
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"], alias="CORS_ORIGINS"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Ensure log format is valid."""
        lower = v.lower()
        if lower not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return lower

    @field_validator("phone_encryption_key")
    @classmethod
    def validate_phone_encryption_key(cls, v: Optional[str]) -> Optional[str]:
        """A configured encryption key must decode to exactly 32 bytes."""
        if v is None:
            return v
        try:
            raw = bytes.fromhex(v)
        except ValueError as exc:
            raise ValueError("PHONE_ENCRYPTION_KEY must be hex encoded") from exc
        if len(raw) != 32:
            raise ValueError("PHONE_ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
        return v.lower()

    @model_validator(mode="after")
    def validate_production_secrets(self) -> "Settings":
        """Refuse to start production without real secrets."""
        if self.environment == "production":
            if not (self.phone_hash_key and self.phone_encryption_key):
                raise ValueError("PHONE_HASH_KEY and PHONE_ENCRYPTION_KEY are required in production")
            if self.jwt_secret_key.startswith("dev-only"):
                raise ValueError("JWT_SECRET_KEY must be set in production")
        return self

    @model_validator(mode="after")
    def resolve_database_url(self) -> "Settings":
        """Convert relative SQLite paths to absolute paths."""
        self.database_url = _resolve_database_url(self.database_url)
        return self

    def is_sqlite(self) -> bool:
        """Check whether the configured store is SQLite."""
        return self.database_url.startswith("sqlite")

    def is_phone_crypto_configured(self) -> bool:
        """Check if both phone secrets are present."""
        return bool(self.phone_hash_key and self.phone_encryption_key)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once and cached. To reload settings,
    call `get_settings.cache_clear()` first.
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear settings cache and reload from environment."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
]
