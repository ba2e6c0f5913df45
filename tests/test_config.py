import pytest

from src.fieldtrack.config import Settings


def test_settings_defaults():
    config = Settings(_env_file=None)

    assert config.log_level == "info"
    assert config.poll_interval_ms == 5000
    assert config.max_deviation_meters == 50.0
    assert config.min_dwell_ms == 3000
    assert config.cooldown_ms == 10000


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FIELDTRACK_LOG_LEVEL", " DEBUG ")
    monkeypatch.setenv("FIELDTRACK_FRONTEND_ALLOWED_ORIGINS", '["https://a.example", "https://b.example"]')

    config = Settings(_env_file=None)

    assert config.log_level == "debug"
    assert config.frontend_allowed_origins == ("https://a.example", "https://b.example")
