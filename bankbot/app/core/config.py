import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_list(raw: Any) -> list[str]:
    """Accept a JSON list or a comma/whitespace separated string."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    return [p for p in re.split(r"[,\s]+", raw) if p]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Per-category rate limit policies are fixed in code and are not settings.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False
    app_name: str = "Banking Assistant Router"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Rate limiting settings
    rate_limit_enabled: bool = True
    # Key buckets on X-User-ID; only for deployments behind an authenticating proxy
    rate_limit_trust_user_header: bool = False
    rate_limit_bucket_ttl_seconds: int = 3600  # 0 disables idle eviction
    rate_limit_cleanup_interval_seconds: int = 300
    rate_limit_max_buckets: int = 10000
    rate_limit_exempt_paths: Annotated[list[str], NoDecode] = [
        "/health",
        "/metrics",
        "/stats",
        "/docs",
        "/openapi.json",
    ]

    # Inbound message limits
    max_message_length: int = 1000

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", "rate_limit_exempt_paths", mode="before")
    @classmethod
    def decode_list(cls, v: Any) -> list[str]:
        return _parse_list(v)

    @field_validator("rate_limit_bucket_ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """Validate bucket TTL is not negative."""
        if v < 0:
            raise ValueError("rate_limit_bucket_ttl_seconds must not be negative")
        return v

    @field_validator(
        "rate_limit_cleanup_interval_seconds",
        "rate_limit_max_buckets",
        "max_message_length",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate size and interval values are positive."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
