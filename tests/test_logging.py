import json
import logging

import structlog

from princess_scheduler.core.observability.logging import configure_logging, resolve_log_level


def test_resolve_log_level(monkeypatch):
    monkeypatch.delenv("PRINCESS_LOG_LEVEL", raising=False)
    assert resolve_log_level() == logging.WARNING
    assert resolve_log_level("debug") == logging.DEBUG

    monkeypatch.setenv("PRINCESS_LOG_LEVEL", "INFO")
    assert resolve_log_level() == logging.INFO
    assert resolve_log_level("ERROR") == logging.ERROR
    assert resolve_log_level("LOUD") == logging.WARNING


def test_json_logs_go_to_stderr(capsys):
    configure_logging(level="INFO", renderer="json")
    structlog.get_logger("princess_scheduler.test").info("move_proposed", stage_id="S1")
    structlog.get_logger("princess_scheduler.test").debug("hidden")

    captured = capsys.readouterr()
    assert captured.out == ""
    lines = [json.loads(line) for line in captured.err.splitlines() if line.strip()]
    assert len(lines) == 1
    assert lines[0]["event"] == "move_proposed"
    assert lines[0]["stage_id"] == "S1"
    assert lines[0]["level"] == "info"
    configure_logging(level="WARNING")
