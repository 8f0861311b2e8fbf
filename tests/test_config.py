"""
Unit tests for configuration module.
"""
import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings, reset_settings


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    for name in ["PORT", "LOG_LEVEL", "BATCH_SIZE", "CACHE_ADMISSION_THRESHOLD", "OPENAI_MODEL"]:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


def test_settings_defaults():
    """Test default configuration values."""
    settings = Settings(_env_file=None)
    assert settings.app_name == "Hybrid Tax Classification Service"
    assert settings.host == "0.0.0.0"
    assert settings.port == 8000
    assert settings.log_level == "INFO"
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.batch_size == 50
    assert settings.max_token_cap == 800
    assert settings.tokens_per_item == 40
    assert settings.batch_pacing_seconds == 1.0
    assert settings.reference_acceptance_threshold == 0.8
    assert settings.cache_admission_threshold == 0.3


def test_thresholds_are_independent(monkeypatch):
    monkeypatch.setenv("CACHE_ADMISSION_THRESHOLD", "0.4")
    settings = Settings(_env_file=None)
    assert settings.cache_admission_threshold == 0.4
    assert settings.reference_acceptance_threshold == 0.8


def test_settings_validation_port(monkeypatch):
    """Test port validation."""
    monkeypatch.setenv("PORT", "99999")
    with pytest.raises(ValidationError):
        get_settings()


def test_settings_validation_log_level(monkeypatch):
    """Test log level validation."""
    monkeypatch.setenv("LOG_LEVEL", "INVALID")
    with pytest.raises(ValidationError):
        get_settings()


def test_settings_validation_batch_size(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "51")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_settings_validation_threshold():
    with pytest.raises(ValidationError):
        Settings(cache_admission_threshold=1.5, _env_file=None)


def test_settings_singleton():
    """Test settings singleton behavior."""
    settings1 = get_settings()
    settings2 = get_settings()
    assert settings1 is settings2
