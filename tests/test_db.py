"""Tests for engine and session lifecycle."""

import pytest

from survey_engine import db
from survey_engine.services.survey_state_service import SurveyStateService


@pytest.mark.asyncio
async def test_create_tables_and_get_db():
    await db.init_db("sqlite+aiosqlite:///:memory:")
    try:
        await db.create_tables()

        sessions = db.get_db()
        session = await sessions.__anext__()
        service = SurveyStateService(session)
        await service.set_survey_skipped(3)

        preferences = await service.get_preferences()
        assert preferences.skipped_survey_ids == frozenset({3})
        await sessions.aclose()
    finally:
        await db.close_db()

    assert db.engine is None
    assert db.AsyncSessionLocal is None
