"""Unit tests for src/core/config.py"""

import pytest
from pydantic import ValidationError

from src.core.config import SessionConfig


def test_defaults() -> None:
    config = SessionConfig()
    assert config.turn_seconds == 25
    assert config.rematch_seconds == 30
    assert config.tick_seconds == 1.0
    assert config.database_url == "sqlite:///:memory:"


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TTT_TURN_SECONDS", "10")
    monkeypatch.setenv("TTT_REMATCH_SECONDS", "15")
    monkeypatch.setenv("TTT_TICK_SECONDS", "0.5")
    monkeypatch.setenv("TTT_DATABASE_URL", "sqlite:///games.db")
    monkeypatch.setenv("TTT_SQL_ECHO", "true")

    config = SessionConfig.from_env()
    assert config.turn_seconds == 10
    assert config.rematch_seconds == 15
    assert config.tick_seconds == 0.5
    assert config.database_url == "sqlite:///games.db"
    assert config.sql_echo


def test_countdowns_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        SessionConfig(turn_seconds=0)
    with pytest.raises(ValidationError):
        SessionConfig(tick_seconds=0)
