"""Test configuration and fixtures; survey state tests run on in-memory SQLite."""

import os
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from survey_engine import models  # noqa: F401 - ensure models are registered
from survey_engine.db import Base
from survey_engine.survey_models import QuestionContent, QuestionType, Study, Survey, SurveyQuestion

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection, otherwise every checkout sees an empty database
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture
def make_question():
    def _make(
        question_id: int = 1,
        question_type: QuestionType = QuestionType.TEXT,
        *,
        position: int = None,
        label_text: str = "How was your trip?",
        url: str = None,
        embedded_data_fields=(),
        required: bool = True,
    ) -> SurveyQuestion:
        return SurveyQuestion(
            id=question_id,
            position=question_id if position is None else position,
            required=required,
            content=QuestionContent(
                label_text=label_text,
                type=question_type,
                url=url,
                embedded_data_fields=frozenset(embedded_data_fields),
            ),
        )

    return _make


@pytest.fixture
def make_survey():
    def _make(survey_id: int = 1, questions=(), **overrides) -> Survey:
        timestamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return Survey(
            id=survey_id,
            name=f"Survey {survey_id}",
            created_at=timestamp,
            updated_at=timestamp,
            study=Study(id=10, name="Rider Study", description="Tell us about your ride"),
            questions=tuple(questions),
            **overrides,
        )

    return _make
