from datetime import timedelta

import pytest
from pydantic import ValidationError

from chainscope.settings import Settings


def test_defaults():
    settings = Settings()

    assert settings.max_retries == 3
    assert settings.default_page_limit == 20
    assert settings.circuit_failure_threshold == 5


def test_env_aliases():
    settings = Settings.model_validate(
        {"MAX_RETRIES": "5", "INITIAL_DELAY_MS": "250", "UNRELATED": "x"}
    )

    assert settings.max_retries == 5
    assert settings.initial_delay_ms == 250


def test_from_env(monkeypatch):
    monkeypatch.setenv("DEFAULT_PAGE_LIMIT", "50")
    monkeypatch.setenv("CIRCUIT_TRIP_WINDOW_MS", "1000")

    settings = Settings.from_env()

    assert settings.default_page_limit == 50
    assert settings.circuit_breaker_config().trip_window == timedelta(seconds=1)


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_retries": -1},
        {"initial_delay_ms": 0},
        {"backoff_multiplier": 0.5},
        {"circuit_failure_threshold": 0},
        {"default_page_limit": 0},
        {"verification_cache_ttl_seconds": -1},
    ],
)
def test_bounds(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_retry_policy():
    policy = Settings(
        max_retries=2, initial_delay_ms=500, backoff_multiplier=3
    ).retry_policy()

    assert policy.max_retries == 2
    assert policy.initial_delay == 0.5
    assert policy.backoff_multiplier == 3
