import json
import re
from typing import Annotated, Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


_DEFAULT_JWT_SECRET = "your-secret-key"


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return [str(v).strip() for v in raw if str(v).strip()]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but accept a comma or whitespace separated list too.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(v).strip() for v in parsed if str(v).strip()]

    parts = [p for p in re.split(r"[,\s]+", raw) if p]
    if "*" in parts:
        return ["*"]
    return list(dict.fromkeys(parts))


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Per-role rate tiers are fixed and not configurable here.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False
    environment: str = "development"  # development | production | test

    # Database
    database_url: str = "sqlite+aiosqlite:///./acquisitions.db"
    db_echo: bool = False

    # JWT / session cookie
    jwt_secret: str = _DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 24 * 60  # 1 day
    cookie_max_age_seconds: int = 15 * 60

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]
    cors_allow_credentials: bool = False  # Requires explicit origins

    # Redis settings (optional distributed window store)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Security middleware
    policy_timeout_seconds: float = 0.5
    trust_forwarded_for: bool = False  # Only enable behind a trusted proxy
    bot_detection_enabled: bool = True
    shield_enabled: bool = True
    rate_limit_max_entries: int = 10000
    rate_limit_cleanup_interval_seconds: float = 60.0

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("policy_timeout_seconds", "rate_limit_cleanup_interval_seconds")
    @classmethod
    def validate_positive_seconds(cls, v: float, info) -> float:
        """Validate a duration setting is positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("jwt_expire_minutes", "cookie_max_age_seconds", "rate_limit_max_entries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str, info) -> str:
        """Refuse the default JWT secret in production."""
        if info.data.get("environment") == "production" and v == _DEFAULT_JWT_SECRET:
            raise ValueError(
                "JWT_SECRET must be changed from the default in production"
            )
        return v

    @model_validator(mode="after")
    def validate_cors_credentials(self) -> "Settings":
        """Credentialed CORS needs an explicit origin list."""
        if self.cors_allow_credentials and "*" in self.cors_origins:
            raise ValueError(
                "CORS_ALLOW_CREDENTIALS cannot be combined with a wildcard CORS origin"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
