"""
Tests for environment-driven configuration.
"""

import pytest

from shared.config import DEFAULT_JWT_SECRET, get_client_config, get_config


def test_defaults():
    config = get_config("auth", 8010)
    assert config.challenge_ttl_seconds == 120
    assert config.session_ttl_seconds == 3600
    assert config.jwt_algorithm == "HS256"
    assert config.redis_url is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("KEYAUTH_JWT_SECRET", "current")
    monkeypatch.setenv("KEYAUTH_JWT_PREVIOUS_SECRETS", '["old", "current"]')
    monkeypatch.setenv("KEYAUTH_REDIS_URL", "redis://cache:6379/0")

    config = get_config("auth", 8010)
    assert config.redis_url == "redis://cache:6379/0"
    assert config.verification_secrets == ["current", "old"]
    assert config.uses_default_secret is False


def test_default_secret_is_flagged():
    assert get_config("auth", 8010, jwt_secret=DEFAULT_JWT_SECRET).uses_default_secret is True


def test_rejects_non_positive_ttl():
    with pytest.raises(ValueError):
        get_config("auth", 8010, challenge_ttl_seconds=0)


def test_client_config(monkeypatch):
    monkeypatch.setenv("KEYAUTH_CLIENT_AUTH_SERVICE_URL", "https://auth.example.com")
    config = get_client_config(key_slot="work")
    assert config.auth_service_url == "https://auth.example.com"
    assert config.key_slot == "work"
