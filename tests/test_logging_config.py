"""Tests for logging setup."""

import logging

import pytest
import structlog

from survey_engine import logging_config


@pytest.fixture
def flow_log(tmp_path, monkeypatch):
    log_file = tmp_path / "logs" / "survey_flow.log"
    root_logger = logging.getLogger()
    saved_handlers = root_logger.handlers[:]
    saved_level = root_logger.level

    monkeypatch.setattr(logging_config, "log_file_path", log_file)
    monkeypatch.setattr(logging_config, "_logging_configured", False)
    try:
        yield log_file
    finally:
        for handler in root_logger.handlers[:]:
            if handler not in saved_handlers:
                handler.close()
                root_logger.removeHandler(handler)
        for handler in saved_handlers:
            if handler not in root_logger.handlers:
                root_logger.addHandler(handler)
        root_logger.setLevel(saved_level)
        structlog.reset_defaults()


def test_only_flow_events_reach_the_file(flow_log):
    logging_config.setup_logging()

    structlog.get_logger("survey_engine.flow").info("Survey presented", survey_id=3, question_id=9)
    structlog.get_logger("survey_engine.db").info("Database engine initialized")

    content = flow_log.read_text(encoding="utf-8")
    assert "Survey presented" in content
    assert "survey_id=3 question_id=9" in content
    assert "Database engine initialized" not in content


def test_setup_is_idempotent(flow_log):
    logging_config.setup_logging()
    handler_count = len(logging.getLogger().handlers)

    logging_config.setup_logging()

    assert len(logging.getLogger().handlers) == handler_count
