"""Tests for environment-driven settings."""

from tkey_mcp.config import Settings
from tkey_mcp.transport.serial_connection import SERIAL_SPEED


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("TKEY_PORT", "TKEY_SPEED", "TKEY_LOG_LEVEL", "TKEY_VERBOSE"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_env()
    assert settings.port == ""
    assert settings.speed == SERIAL_SPEED
    assert settings.log_level == "INFO"
    assert settings.verbose is False


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TKEY_PORT", "/dev/ttyACM3")
    monkeypatch.setenv("TKEY_SPEED", "115200")
    monkeypatch.setenv("TKEY_LOG_LEVEL", "debug")
    monkeypatch.setenv("TKEY_VERBOSE", "true")
    settings = Settings.from_env()
    assert settings.port == "/dev/ttyACM3"
    assert settings.speed == 115200
    assert settings.log_level == "DEBUG"
    assert settings.verbose is True
