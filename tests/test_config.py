"""Tests for environment-driven configuration."""

import pytest

from pomopilot.config import Environment, PomopilotConfig


def test_development_defaults(monkeypatch):
    monkeypatch.delenv("POMOPILOT_ENV", raising=False)
    monkeypatch.delenv("MISSING_SESSION_POLICY", raising=False)

    cfg = PomopilotConfig()

    assert cfg.environment == Environment.DEVELOPMENT
    assert cfg.session.missing_session_policy == "raise"
    assert cfg.timer.reminder_threshold_seconds == 120
    assert cfg.storage.path.name == "pomopilot.json"


def test_invalid_values_are_collected(monkeypatch):
    monkeypatch.setenv("AI_TIMEOUT", "0")
    monkeypatch.setenv("MISSING_SESSION_POLICY", "ignore")

    with pytest.raises(ValueError) as excinfo:
        PomopilotConfig()

    message = str(excinfo.value)
    assert "AI_TIMEOUT" in message
    assert "MISSING_SESSION_POLICY" in message


def test_logging_config_adds_file_handler(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_TO_FILE", "true")
    monkeypatch.setenv("LOG_DIR", str(tmp_path))

    logging_config = PomopilotConfig().get_logging_config()

    assert logging_config["handlers"]["file"]["class"] == "logging.handlers.RotatingFileHandler"
    assert logging_config["loggers"][""]["handlers"] == ["console", "file"]
