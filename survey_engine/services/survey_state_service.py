"""Facade over persisted survey completion, skip and reminder state."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from survey_engine.config import settings
from survey_engine.repositories.survey_state_repository import SurveyStateRepository
from survey_engine.survey_models import SurveyPreferences


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SurveyStateService:
    """Reads and writes the state that decides whether a survey may be shown.

    Writes are keyed by survey id and committed immediately; the last writer
    wins. Only one survey flow is active at a time so nothing finer is needed.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        reminder_interval: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session = session
        self.repository = SurveyStateRepository(session)
        self.reminder_interval = reminder_interval or timedelta(hours=settings.survey_reminder_interval_hours)
        self.clock = clock
        self.logger = structlog.get_logger(__name__)

    async def should_show_survey(self) -> bool:
        """False while a postponed reminder is still pending."""
        next_reminder_at = await self.repository.get_next_reminder_at()
        if next_reminder_at is None:
            return True
        if next_reminder_at.tzinfo is None:
            next_reminder_at = next_reminder_at.replace(tzinfo=timezone.utc)
        return self.clock() >= next_reminder_at

    async def set_survey_completed(self, survey_id: int) -> None:
        await self.repository.mark_completed(survey_id, self.clock())
        await self.session.commit()
        self.logger.info("Marked survey as completed", survey_id=survey_id)

    async def set_survey_skipped(self, survey_id: int) -> None:
        await self.repository.mark_skipped(survey_id, self.clock())
        await self.session.commit()
        self.logger.info("Marked survey as skipped", survey_id=survey_id)

    async def set_next_reminder_date(self) -> None:
        reminder_at = self.clock() + self.reminder_interval
        await self.repository.set_next_reminder_at(reminder_at)
        await self.session.commit()
        self.logger.info("Survey reminder postponed", next_reminder_at=reminder_at.isoformat())

    async def get_preferences(self) -> SurveyPreferences:
        """Snapshot of per-survey state for the prioritizer."""
        states = await self.repository.list_all()
        return SurveyPreferences(
            completed_survey_ids=frozenset(state.survey_id for state in states if state.is_completed),
            skipped_survey_ids=frozenset(state.survey_id for state in states if state.is_skipped),
            next_reminder_at=await self.repository.get_next_reminder_at(),
        )
