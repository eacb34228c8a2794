"""Centralized logging configuration for the survey engagement engine."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

from survey_engine.config import settings

# Define the project root to calculate the log file path
project_root = Path(__file__).parent.parent
log_file_path = project_root / "logs/survey_flow.log"

FLOW_LOGGER_PREFIX = "survey_engine.flow"

_logging_configured = False


def _flow_event_renderer(
    _: logging.Logger,
    __: str,
    event_dict: dict[str, Any],
) -> str:
    """Format a structlog event into a compact single-line record."""

    timestamp = event_dict.pop("timestamp", "")
    level = str(event_dict.pop("level", "")).upper()
    event = str(event_dict.pop("event", ""))
    logger_name = event_dict.pop("logger", "")

    # Identifiers first so flow records can be grepped by survey
    leading_keys = ("survey_id", "question_id", "stop_id", "epoch", "phase")

    details: list[str] = []

    for key in leading_keys:
        value = event_dict.pop(key, None)
        if value in (None, "", []):
            continue
        details.append(f"{key}={value}")

    for key, value in event_dict.items():
        if value in (None, "", []):
            continue
        if isinstance(value, dict):
            value = ", ".join(f"{dict_key}={dict_value}" for dict_key, dict_value in value.items())
        details.append(f"{key}={value}")

    parts = [str(timestamp) if timestamp else ""]

    if level:
        parts.append(level)

    if logger_name:
        parts.append(logger_name)

    parts.append(event)

    if details:
        parts.append(" ".join(details))

    return " | ".join(part for part in parts if part)


def setup_logging(*, log_to_file: bool = True) -> None:
    """
    Configure structured logging for the entire application.

    Verbose diagnostics go to stdout while flow interaction events
    (loggers under ``survey_engine.flow``) are also persisted in
    ``logs/survey_flow.log``.
    """

    global _logging_configured

    if _logging_configured:
        return

    log_level = settings.log_level.upper()

    shared_processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s",
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=settings.debug),
        foreign_pre_chain=shared_processors,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(console_handler)

    if log_to_file:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        file_formatter = structlog.stdlib.ProcessorFormatter(
            processor=_flow_event_renderer,
            foreign_pre_chain=shared_processors,
        )

        file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        file_handler.setFormatter(file_formatter)
        file_handler.addFilter(logging.Filter(FLOW_LOGGER_PREFIX))
        root_logger.addHandler(file_handler)

    root_logger.setLevel(log_level)

    for noisy_logger in ("httpx", "httpcore", "sqlalchemy", "asyncio", "aiosqlite"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logger = structlog.get_logger("logging_setup")
    logger.info(
        "Logging configured",
        level=log_level,
        file_path=str(log_file_path) if log_to_file else None,
    )

    _logging_configured = True
