import os

import pytest

from stackflame.config import Settings
from stackflame.errors import ConfigError


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("STACKFLAME_DISABLE_TELEMETRY")
    settings = Settings.from_env()
    assert settings.target_sample_size == 20000
    assert settings.max_downsample_level == 11
    assert settings.telemetry_enabled
    assert settings.telemetry_db == os.path.join(str(tmp_path / "xdg"), "stackflame", "telemetry.db")


def test_overrides(monkeypatch):
    monkeypatch.setenv("STACKFLAME_TARGET_SAMPLE_SIZE", " 500 ")
    monkeypatch.setenv("STACKFLAME_MAX_DOWNSAMPLE_LEVEL", "3")
    monkeypatch.setenv("STACKFLAME_TELEMETRY_DB", "/tmp/spans.db")
    settings = Settings.from_env()
    assert settings.target_sample_size == 500
    assert settings.max_downsample_level == 3
    assert settings.telemetry_db == "/tmp/spans.db"
    assert not settings.telemetry_enabled


@pytest.mark.parametrize("value", ["Yes", "on", "TRUE", "1"])
def test_disable_flag_values(monkeypatch, value):
    monkeypatch.setenv("STACKFLAME_DISABLE_TELEMETRY", value)
    assert not Settings.from_env().telemetry_enabled


def test_disable_flag_off(monkeypatch):
    monkeypatch.setenv("STACKFLAME_DISABLE_TELEMETRY", "0")
    assert Settings.from_env().telemetry_enabled


@pytest.mark.parametrize("value", ["lots", "0", "-5"])
def test_invalid_target_sample_size(monkeypatch, value):
    monkeypatch.setenv("STACKFLAME_TARGET_SAMPLE_SIZE", value)
    with pytest.raises(ConfigError):
        Settings.from_env()
