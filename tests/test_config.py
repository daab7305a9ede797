"""Tests for settings."""

import pytest

from app.config import ConfigurationError, Settings
from app.context import create_context


def test_generates_secret_when_missing():
    settings = Settings(ACCESS_TOKEN_SECRET="")
    assert settings.ACCESS_TOKEN_SECRET
    assert any("ACCESS_TOKEN_SECRET" in warning for warning in settings.validate())


def test_unknown_setting():
    with pytest.raises(ConfigurationError):
        Settings(NOT_A_SETTING=1)


def test_cors_origins_list():
    settings = Settings(CORS_ORIGINS='["https://a.example", "https://b.example"]')
    assert settings.cors_origins_list == ["https://a.example", "https://b.example"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"STORE_BACKEND": "sqlite"},
        {"ACCESS_TOKEN_ALGORITHM": "RS256"},
        {"REFRESH_TOKEN_EXPIRES_IN": 0},
    ],
)
def test_check_rejects_unusable_settings(overrides):
    with pytest.raises(ConfigurationError):
        create_context(Settings(ACCESS_TOKEN_SECRET="x", **overrides))


def test_cookie_warning():
    settings = Settings(ACCESS_TOKEN_SECRET="x", COOKIE_SAMESITE="none", COOKIE_SECURE=False)
    assert any("COOKIE_SECURE" in warning for warning in settings.validate())
