from __future__ import annotations

from studytrack.logging_config import build_logging_config


def test_levels_follow_environment(monkeypatch) -> None:
    monkeypatch.setenv("STUDYTRACK_LOG_LEVEL", "warning")
    monkeypatch.setenv("STUDYTRACK_TELEMETRY_LOG_LEVEL", "error")
    monkeypatch.delenv("STUDYTRACK_DEBUG_SQL", raising=False)

    config = build_logging_config()

    assert config["root"]["level"] == "WARNING"
    assert config["loggers"]["studytrack.telemetry"]["level"] == "ERROR"
    assert "sqlalchemy.engine" not in config["loggers"]


def test_explicit_level_wins_and_telemetry_inherits_it(monkeypatch) -> None:
    monkeypatch.setenv("STUDYTRACK_LOG_LEVEL", "warning")
    monkeypatch.delenv("STUDYTRACK_TELEMETRY_LOG_LEVEL", raising=False)

    config = build_logging_config("debug")

    assert config["root"]["level"] == "DEBUG"
    assert config["loggers"]["studytrack.telemetry"]["level"] == "DEBUG"


def test_debug_flags_enable_library_loggers(monkeypatch) -> None:
    monkeypatch.setenv("STUDYTRACK_DEBUG_SQL", "true")
    monkeypatch.setenv("STUDYTRACK_DEBUG_HTTP", "1")

    loggers = build_logging_config()["loggers"]

    assert loggers["sqlalchemy.engine"]["level"] == "INFO"
    assert loggers["uvicorn.access"]["level"] == "DEBUG"
