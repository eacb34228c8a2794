"""Tests for persisted survey state."""

from datetime import datetime, timedelta, timezone

import pytest

from survey_engine.models import SystemSetting
from survey_engine.repositories.survey_state_repository import NEXT_REMINDER_KEY, SurveyStateRepository
from survey_engine.services.survey_state_service import SurveyStateService

START = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def service(db_session, clock):
    return SurveyStateService(db_session, reminder_interval=timedelta(hours=24), clock=clock)


@pytest.mark.asyncio
async def test_should_show_survey_without_reminder(service):
    assert await service.should_show_survey() is True


@pytest.mark.asyncio
async def test_reminder_postpones_until_interval_passes(service, clock):
    await service.set_next_reminder_date()

    clock.now = START + timedelta(hours=23)
    assert await service.should_show_survey() is False

    clock.now = START + timedelta(hours=24)
    assert await service.should_show_survey() is True


@pytest.mark.asyncio
async def test_reminder_is_stored_as_system_setting(service, db_session):
    await service.set_next_reminder_date()

    setting = await db_session.get(SystemSetting, NEXT_REMINDER_KEY)

    assert datetime.fromisoformat(setting.value["value"]) == START + timedelta(hours=24)


@pytest.mark.asyncio
async def test_postponing_again_moves_the_reminder(service, clock, db_session):
    await service.set_next_reminder_date()
    clock.now = START + timedelta(hours=30)
    await service.set_next_reminder_date()

    reminder_at = await SurveyStateRepository(db_session).get_next_reminder_at()

    assert reminder_at == START + timedelta(hours=54)
    assert await service.should_show_survey() is False


@pytest.mark.asyncio
async def test_completed_and_skipped_surveys_in_preferences(service):
    await service.set_survey_completed(1)
    await service.set_survey_skipped(2)

    preferences = await service.get_preferences()

    assert preferences.completed_survey_ids == frozenset({1})
    assert preferences.skipped_survey_ids == frozenset({2})
    assert preferences.next_reminder_at is None


@pytest.mark.asyncio
async def test_repeated_completion_counts_responses(service, db_session):
    await service.set_survey_completed(7)
    await service.set_survey_completed(7)

    state = await SurveyStateRepository(db_session).get(7)

    assert state.response_count == 2
    assert state.is_completed


@pytest.mark.asyncio
async def test_last_reminder_write_wins(service, clock):
    await service.set_next_reminder_date()
    clock.now = START + timedelta(hours=2)
    await service.set_next_reminder_date()

    preferences = await service.get_preferences()

    assert preferences.next_reminder_at == START + timedelta(hours=26)
