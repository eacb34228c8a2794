#!/usr/bin/env python3
"""Create the survey state tables."""

import asyncio
from urllib.parse import urlparse, urlunparse

import structlog

from survey_engine.logging_config import setup_logging

setup_logging(log_to_file=False)

from survey_engine import models  # noqa: F401,E402 - ensure models are registered
from survey_engine.config import settings  # noqa: E402
from survey_engine.db import close_db, create_tables, init_db  # noqa: E402

logger = structlog.get_logger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask credentials in the database URL for logging."""
    parsed = urlparse(url)
    netloc = parsed.netloc
    if parsed.password:
        netloc = netloc.replace(parsed.password, "***")
    return urlunparse(parsed._replace(netloc=netloc))


async def initialize_database() -> None:
    logger.info("Initializing survey state database")
    try:
        await init_db()
        await create_tables()
        logger.info("Survey state tables ready")
    except Exception as exc:
        logger.error("Database initialization failed", error=str(exc), exc_info=True)
        raise SystemExit(1) from exc
    finally:
        await close_db()


if __name__ == "__main__":
    logger.info("Starting database initialization", database_url=_mask_database_url(settings.database_url))
    asyncio.run(initialize_database())
