"""Database models for persisted survey engagement state."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Integer, String, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from survey_engine.db import Base


class SurveyState(Base):
    """Per-survey completion and skip state, keyed by the backend survey id."""
    __tablename__ = "survey_states"

    survey_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    skipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    response_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_survey_states_completed_at", "completed_at"),
        Index("ix_survey_states_skipped_at", "skipped_at"),
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def is_skipped(self) -> bool:
        return self.skipped_at is not None


class SystemSetting(Base):
    """Simple key-value storage for application-wide settings."""
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
