import pytest

from app.core.config import Settings


def test_defaults(monkeypatch):
    for name in ("STORE_BACKEND", "ENRICHMENT_TIMEOUT_SECONDS", "CHAT_MEDIA_BUCKET", "LOG_JSON"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.STORE_BACKEND == "supabase"
    assert settings.ENRICHMENT_TIMEOUT_SECONDS == 5.0
    assert settings.LOG_JSON is False
    assert settings.CHAT_MEDIA_BUCKET == "chat_media"


def test_values_come_from_the_environment(monkeypatch):
    monkeypatch.setenv("PUBLIC_SUPABASE_URL", "https://abc.supabase.co")
    monkeypatch.setenv("STORE_BACKEND", "Memory")
    monkeypatch.setenv("ENRICHMENT_TIMEOUT_SECONDS", "1.5")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.dev, ,https://b.dev")
    monkeypatch.setenv("LOG_JSON", "yes")

    settings = Settings()

    assert settings.STORE_BACKEND == "memory"
    assert settings.ENRICHMENT_TIMEOUT_SECONDS == 1.5
    assert settings.CORS_ORIGINS == ["https://a.dev", "https://b.dev"]
    assert settings.LOG_JSON is True
    assert settings.jwt_issuer == "https://abc.supabase.co/auth/v1"


def test_bad_numbers_fail_loudly(monkeypatch):
    monkeypatch.setenv("ENRICHMENT_TIMEOUT_SECONDS", "soon")

    with pytest.raises(ValueError):
        Settings()
