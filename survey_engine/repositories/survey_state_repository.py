"""Repository for persisted survey completion, skip and reminder state."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_engine.models import SurveyState, SystemSetting

NEXT_REMINDER_KEY = "survey.next_reminder_at"


class SurveyStateRepository:
    """Repository for survey state database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.logger = structlog.get_logger(__name__)

    async def get(self, survey_id: int) -> Optional[SurveyState]:
        """Fetch the state row for a survey."""
        stmt = select(SurveyState).where(SurveyState.survey_id == survey_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, survey_id: int) -> SurveyState:
        state = await self.get(survey_id)
        if state is None:
            state = SurveyState(survey_id=survey_id, response_count=0)
            self.session.add(state)
            await self.session.flush()
        return state

    async def list_all(self) -> List[SurveyState]:
        stmt = select(SurveyState).order_by(SurveyState.survey_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_completed(self, survey_id: int, completed_at: datetime) -> SurveyState:
        """Record a completed survey; repeated completions bump the response count."""
        state = await self.get_or_create(survey_id)
        state.completed_at = completed_at
        state.response_count = (state.response_count or 0) + 1
        await self.session.flush()
        self.logger.info("survey_state_completed", survey_id=survey_id, response_count=state.response_count)
        return state

    async def mark_skipped(self, survey_id: int, skipped_at: datetime) -> SurveyState:
        state = await self.get_or_create(survey_id)
        state.skipped_at = skipped_at
        await self.session.flush()
        self.logger.info("survey_state_skipped", survey_id=survey_id)
        return state

    async def _get_reminder_setting(self) -> Optional[SystemSetting]:
        stmt = select(SystemSetting).where(SystemSetting.key == NEXT_REMINDER_KEY)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_next_reminder_at(self) -> Optional[datetime]:
        """Return the stored reminder time, or None when no reminder is pending."""
        setting = await self._get_reminder_setting()
        raw = (setting.value or {}).get("value") if setting is not None else None
        if not raw:
            return None
        return datetime.fromisoformat(raw)

    async def set_next_reminder_at(self, reminder_at: datetime) -> SystemSetting:
        setting = await self._get_reminder_setting()
        payload = {"value": reminder_at.isoformat()}
        if setting is None:
            setting = SystemSetting(
                key=NEXT_REMINDER_KEY,
                value=payload,
                description="Earliest time the next survey prompt may be shown",
            )
            self.session.add(setting)
        else:
            setting.value = payload
        await self.session.flush()
        self.logger.info("survey_reminder_scheduled", reminder_at=payload["value"])
        return setting
