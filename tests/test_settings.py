import pytest
from pydantic import ValidationError

from bankbot.app.core.config import Settings


def test_defaults(monkeypatch) -> None:
    for name in (
        "CORS_ORIGINS",
        "RATE_LIMIT_ENABLED",
        "RATE_LIMIT_TRUST_USER_HEADER",
        "LOG_FORMAT",
        "MAX_MESSAGE_LENGTH",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)
    assert settings.rate_limit_enabled is True
    assert settings.rate_limit_trust_user_header is False
    assert settings.max_message_length == 1000
    assert settings.log_format == "text"
    assert "/health" in settings.rate_limit_exempt_paths


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('["http://localhost:5173"]', ["http://localhost:5173"]),
        ("https://a.example, https://b.example", ["https://a.example", "https://b.example"]),
        ("*", ["*"]),
        ("[]", []),
        ("", []),
    ],
)
def test_cors_origins_parsing_variants(monkeypatch, raw: str, expected: list[str]) -> None:
    monkeypatch.setenv("CORS_ORIGINS", raw)

    settings = Settings(_env_file=None)
    assert settings.cors_origins == expected


def test_exempt_paths_from_env(monkeypatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_EXEMPT_PATHS", "/health /ready")

    settings = Settings(_env_file=None)
    assert settings.rate_limit_exempt_paths == ["/health", "/ready"]


def test_log_format_is_normalized(monkeypatch) -> None:
    monkeypatch.setenv("LOG_FORMAT", "JSON")

    assert Settings(_env_file=None).log_format == "json"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("LOG_FORMAT", "xml"),
        ("RATE_LIMIT_BUCKET_TTL_SECONDS", "-1"),
        ("RATE_LIMIT_CLEANUP_INTERVAL_SECONDS", "0"),
        ("RATE_LIMIT_MAX_BUCKETS", "0"),
        ("MAX_MESSAGE_LENGTH", "0"),
    ],
)
def test_invalid_values_rejected(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_ttl_zero_disables_eviction(monkeypatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_BUCKET_TTL_SECONDS", "0")

    assert Settings(_env_file=None).rate_limit_bucket_ttl_seconds == 0
