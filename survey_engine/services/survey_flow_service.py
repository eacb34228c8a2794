"""Survey flow controller: hero question, remaining questions, skip and postpone.

The controller owns one survey flow. Callers dispatch actions through
:meth:`SurveyFlowController.on_action`; network work runs in background tasks
whose results are applied only if no terminal action happened meanwhile.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional, Protocol, Sequence, Set, Union

import structlog

from survey_engine.config import settings
from survey_engine.errors import user_message_for
from survey_engine.logging_config import FLOW_LOGGER_PREFIX
from survey_engine.services.application_context import SurveyApplicationContext
from survey_engine.services.error_classifier import classify
from survey_engine.services.survey_prioritizer import eligible_surveys
from survey_engine.survey_models import (
    Answer,
    QuestionAnswerSubmission,
    QuestionType,
    Stop,
    Survey,
    SurveyPreferences,
    SurveyQuestion,
    is_answer_empty,
)
from survey_engine.utils.strings import Strings


class SurveySubmissionService(Protocol):
    surveys: Sequence[Survey]

    async def fetch_surveys(self) -> None: ...

    async def submit_survey_response(
        self,
        survey_id: int,
        stop_id: Optional[str],
        stop_longitude: Optional[float],
        stop_latitude: Optional[float],
        answer: QuestionAnswerSubmission,
    ) -> None: ...

    async def update_survey_responses(
        self,
        survey_id: int,
        stop_id: Optional[str],
        stop_longitude: Optional[float],
        stop_latitude: Optional[float],
        answers: Sequence[QuestionAnswerSubmission],
    ) -> None: ...


class SurveyStateManager(Protocol):
    async def should_show_survey(self) -> bool: ...

    async def set_survey_completed(self, survey_id: int) -> None: ...

    async def set_survey_skipped(self, survey_id: int) -> None: ...

    async def set_next_reminder_date(self) -> None: ...

    async def get_preferences(self) -> SurveyPreferences: ...


class SurveyPrioritizerProtocol(Protocol):
    def next_survey_index(
        self,
        surveys: Sequence[Survey],
        visible_on_stop: bool,
        stop: Optional[Stop] = None,
        preferences: Optional[SurveyPreferences] = None,
    ) -> Optional[int]: ...


class ExternalURLBuilder(Protocol):
    def build_url(self, survey: Survey, stop: Optional[Stop] = None) -> Optional[str]: ...


class FlowPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    HERO_QUESTION = "hero_question"
    REMAINING_QUESTIONS = "remaining_questions"
    TERMINAL = "terminal"


ACTIVE_PHASES = frozenset({FlowPhase.LOADING, FlowPhase.HERO_QUESTION, FlowPhase.REMAINING_QUESTIONS})


class ToastType(str, Enum):
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class Toast:
    type: ToastType
    message: str


@dataclass
class SurveyFlowState:
    """Observable state of a survey flow."""

    phase: FlowPhase = FlowPhase.IDLE
    survey: Optional[Survey] = None
    is_loading: bool = False
    hero_question: Optional[SurveyQuestion] = None
    hero_answer: Optional[Answer] = None
    show_hero_question: bool = False
    questions: List[SurveyQuestion] = field(default_factory=list)
    answers: Dict[int, Answer] = field(default_factory=dict)
    show_full_survey_questions: bool = False
    incomplete_question_ids: Set[int] = field(default_factory=set)
    answered_question_count: int = 0
    answerable_question_count: int = 0
    toast: Optional[Toast] = None
    show_toast_message: bool = False
    open_external_survey: bool = False
    external_survey_url: Optional[str] = None
    show_survey_dismiss_sheet: bool = False


# Actions


@dataclass(frozen=True)
class OnAppear:
    pass


@dataclass(frozen=True)
class UpdateHeroAnswer:
    answer: Optional[Answer]


@dataclass(frozen=True)
class OnTapNextHeroQuestion:
    pass


@dataclass(frozen=True)
class OnUpdateQuestion:
    question_id: int
    answer: Optional[Answer]


@dataclass(frozen=True)
class OnSubmitQuestions:
    pass


@dataclass(frozen=True)
class OnSkipSurvey:
    pass


@dataclass(frozen=True)
class OnRemindLater:
    pass


@dataclass(frozen=True)
class OnCloseQuestionsForm:
    pass


@dataclass(frozen=True)
class OnCloseSurveyHeroQuestion:
    pass


@dataclass(frozen=True)
class DismissFullQuestionsForm:
    pass


@dataclass(frozen=True)
class HideSurveyDismissSheet:
    pass


@dataclass(frozen=True)
class HideToastMessage:
    pass


@dataclass(frozen=True)
class OnExternalSurveyOpened:
    pass


SurveyAction = Union[
    OnAppear,
    UpdateHeroAnswer,
    OnTapNextHeroQuestion,
    OnUpdateQuestion,
    OnSubmitQuestions,
    OnSkipSurvey,
    OnRemindLater,
    OnCloseQuestionsForm,
    OnCloseSurveyHeroQuestion,
    DismissFullQuestionsForm,
    HideSurveyDismissSheet,
    HideToastMessage,
    OnExternalSurveyOpened,
]

StateObserver = Callable[[SurveyFlowState], None]


class SurveyFlowController:
    """Drives one survey from selection to completion, skip or postponement."""

    def __init__(
        self,
        *,
        service: SurveySubmissionService,
        state_manager: SurveyStateManager,
        prioritizer: SurveyPrioritizerProtocol,
        url_builder: ExternalURLBuilder,
        application: SurveyApplicationContext,
        stop_context: bool = False,
        stop: Optional[Stop] = None,
        remaining_questions_delay: Optional[float] = None,
    ) -> None:
        self.service = service
        self.state_manager = state_manager
        self.prioritizer = prioritizer
        self.url_builder = url_builder
        self.application = application
        self.stop_context = stop_context
        self.stop = stop
        self.remaining_questions_delay = (
            remaining_questions_delay
            if remaining_questions_delay is not None
            else settings.survey_remaining_questions_delay
        )

        self.state = SurveyFlowState()
        self.logger = structlog.get_logger(FLOW_LOGGER_PREFIX)

        self._epoch = 0
        self._tasks: Set[asyncio.Task[None]] = set()
        self._observers: List[StateObserver] = []

    # Public API

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """Register ``observer``; returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def on_action(self, action: SurveyAction) -> None:
        handler = self._handlers.get(type(action))
        if handler is None:
            raise TypeError(f"Unsupported survey action: {type(action).__name__}")
        self.logger.debug("Survey action", action=type(action).__name__, phase=self.state.phase.value)
        await handler(self, action)

    async def update_current_stop(self, stop: Optional[Stop]) -> None:
        """Rescope to ``stop``; ignored while a survey is already in progress."""
        if self.state.phase in ACTIVE_PHASES:
            self.logger.debug(
                "Stop change ignored during active survey",
                stop_id=stop.id if stop else None,
                phase=self.state.phase.value,
            )
            return

        self.stop = stop
        await self._on_appear(OnAppear())

    async def join(self) -> None:
        """Wait until every background task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel background work and drop any results still in flight."""
        self._cancel_pending()
        await self.join()
        self._observers.clear()

    # Action handlers

    async def _on_appear(self, action: OnAppear) -> None:
        if self.state.phase in ACTIVE_PHASES:
            return

        if not await self.state_manager.should_show_survey():
            self.logger.info("Survey prompt suppressed by stored state")
            self._update(phase=FlowPhase.IDLE)
            return

        self._update(phase=FlowPhase.LOADING, is_loading=True)
        self._spawn(self._fetch_and_select(self._epoch), "survey-fetch")

    async def _on_update_hero_answer(self, action: UpdateHeroAnswer) -> None:
        self._update(hero_answer=action.answer)

    async def _on_tap_next_hero_question(self, action: OnTapNextHeroQuestion) -> None:
        state = self.state
        hero = state.hero_question
        survey = state.survey
        if (
            state.phase != FlowPhase.HERO_QUESTION
            or hero is None
            or survey is None
            or state.is_loading
            or not state.show_hero_question
        ):
            self.logger.debug("Hero question tap ignored", phase=state.phase.value)
            return

        if is_answer_empty(state.hero_answer):
            self._show_toast(ToastType.ERROR, Strings.SURVEY_ANSWER_REQUIRED)
            return

        if hero.content.type == QuestionType.EXTERNAL_SURVEY:
            await self._open_external_survey(survey)
            return

        self._update(is_loading=True)
        submission = QuestionAnswerSubmission(question=hero, answer=state.hero_answer)
        self._spawn(self._submit_hero_answer(self._epoch, survey, submission), "survey-hero-submit")

    async def _on_update_question(self, action: OnUpdateQuestion) -> None:
        if self.state.phase != FlowPhase.REMAINING_QUESTIONS:
            return

        answers = dict(self.state.answers)
        if action.answer is None:
            answers.pop(action.question_id, None)
        else:
            answers[action.question_id] = action.answer

        self._update(
            answers=answers,
            incomplete_question_ids=self.state.incomplete_question_ids - {action.question_id},
            answered_question_count=self._count_answered(self.state.questions, answers),
        )

    async def _on_submit_questions(self, action: OnSubmitQuestions) -> None:
        state = self.state
        survey = state.survey
        if state.phase != FlowPhase.REMAINING_QUESTIONS or survey is None or state.is_loading:
            return

        missing = {
            question.id
            for question in state.questions
            if question.is_answerable and is_answer_empty(state.answers.get(question.id))
        }
        if missing:
            self._update(incomplete_question_ids=missing)
            self._show_toast(ToastType.ERROR, Strings.SURVEY_ANSWER_ALL_QUESTIONS)
            self.logger.info("Survey submission blocked", survey_id=survey.id, missing=sorted(missing))
            return

        submissions = [
            QuestionAnswerSubmission(question=question, answer=state.answers[question.id])
            for question in state.questions
            if question.is_answerable
        ]
        self._update(is_loading=True)
        self._spawn(self._submit_remaining_answers(self._epoch, survey, submissions), "survey-batch-update")

    async def _on_skip_survey(self, action: OnSkipSurvey) -> None:
        survey = self.state.survey
        self._cancel_pending()
        try:
            if survey is not None:
                await self.state_manager.set_survey_skipped(survey.id)
            self.logger.info("Survey skipped", survey_id=survey.id if survey else None)
        except Exception as exc:
            self._log_state_failure("skip", survey, exc)
        finally:
            self._finish()

    async def _on_remind_later(self, action: OnRemindLater) -> None:
        survey = self.state.survey
        self._cancel_pending()
        try:
            await self.state_manager.set_next_reminder_date()
            self.logger.info("Survey postponed", survey_id=survey.id if survey else None)
        except Exception as exc:
            self._log_state_failure("remind_later", survey, exc)
        finally:
            self._finish()

    async def _on_close_questions_form(self, action: OnCloseQuestionsForm) -> None:
        self._cancel_pending()
        self._finish()

    async def _on_close_survey_hero_question(self, action: OnCloseSurveyHeroQuestion) -> None:
        # Skip or postpone is chosen from the sheet
        self._update(show_survey_dismiss_sheet=True)

    async def _on_dismiss_full_questions_form(self, action: DismissFullQuestionsForm) -> None:
        self._update(show_full_survey_questions=False)

    async def _on_hide_survey_dismiss_sheet(self, action: HideSurveyDismissSheet) -> None:
        self._update(show_survey_dismiss_sheet=False)

    async def _on_hide_toast_message(self, action: HideToastMessage) -> None:
        self._update(show_toast_message=False)

    async def _on_external_survey_opened(self, action: OnExternalSurveyOpened) -> None:
        self._update(open_external_survey=False, external_survey_url=None)

    _handlers: Dict[type, Callable[["SurveyFlowController", Any], Awaitable[None]]] = {
        OnAppear: _on_appear,
        UpdateHeroAnswer: _on_update_hero_answer,
        OnTapNextHeroQuestion: _on_tap_next_hero_question,
        OnUpdateQuestion: _on_update_question,
        OnSubmitQuestions: _on_submit_questions,
        OnSkipSurvey: _on_skip_survey,
        OnRemindLater: _on_remind_later,
        OnCloseQuestionsForm: _on_close_questions_form,
        OnCloseSurveyHeroQuestion: _on_close_survey_hero_question,
        DismissFullQuestionsForm: _on_dismiss_full_questions_form,
        HideSurveyDismissSheet: _on_hide_survey_dismiss_sheet,
        HideToastMessage: _on_hide_toast_message,
        OnExternalSurveyOpened: _on_external_survey_opened,
    }

    # Background work

    async def _fetch_and_select(self, epoch: int) -> None:
        try:
            await self.service.fetch_surveys()
        except Exception as exc:
            if self._is_stale(epoch, "fetch"):
                return
            self._update(phase=FlowPhase.IDLE, is_loading=False)
            self._show_error(exc)
            return

        preferences = await self.state_manager.get_preferences()
        if self._is_stale(epoch, "fetch"):
            return

        candidates = eligible_surveys(self.service.surveys, self.stop_context, self.stop)
        index = self.prioritizer.next_survey_index(candidates, self.stop_context, self.stop, preferences)
        if index is None or not 0 <= index < len(candidates):
            self.logger.info("No survey to present", candidates=len(candidates), epoch=epoch)
            self._update(phase=FlowPhase.IDLE, is_loading=False)
            return

        survey = candidates[index]
        hero = next(iter(survey.answerable_questions), None)
        if hero is None:
            self.logger.info("Survey has no answerable question", survey_id=survey.id)
            self._update(phase=FlowPhase.TERMINAL, is_loading=False, survey=None)
            return

        self.logger.info("Survey presented", survey_id=survey.id, question_id=hero.id, epoch=epoch)
        self._update(
            phase=FlowPhase.HERO_QUESTION,
            is_loading=False,
            survey=survey,
            hero_question=hero,
            hero_answer=None,
            show_hero_question=True,
        )

    async def _submit_hero_answer(self, epoch: int, survey: Survey, submission: QuestionAnswerSubmission) -> None:
        stop = self.stop
        try:
            await self.service.submit_survey_response(
                survey.id,
                stop.id if stop else None,
                stop.longitude if stop else None,
                stop.latitude if stop else None,
                submission,
            )
        except Exception as exc:
            if self._is_stale(epoch, "hero_submit"):
                return
            self._update(is_loading=False)
            self._show_error(exc)
            return

        if self._is_stale(epoch, "hero_submit"):
            return

        await self.state_manager.set_survey_completed(survey.id)
        self.logger.info("Hero answer submitted", survey_id=survey.id, question_id=submission.question_id)
        self._update(is_loading=False, show_hero_question=False)

        await asyncio.sleep(self.remaining_questions_delay)
        if self._is_stale(epoch, "remaining_questions"):
            return

        questions = [question for question in survey.questions if question.id != submission.question_id]
        answerable = [
            question for question in survey.answerable_questions if question.id != submission.question_id
        ]
        if not answerable:
            self._finish()
            return

        self._update(
            phase=FlowPhase.REMAINING_QUESTIONS,
            questions=questions,
            answers={},
            incomplete_question_ids=set(),
            answered_question_count=0,
            answerable_question_count=len(answerable),
            show_full_survey_questions=True,
        )

    async def _submit_remaining_answers(
        self,
        epoch: int,
        survey: Survey,
        submissions: List[QuestionAnswerSubmission],
    ) -> None:
        stop = self.stop
        try:
            await self.service.update_survey_responses(
                survey.id,
                stop.id if stop else None,
                stop.longitude if stop else None,
                stop.latitude if stop else None,
                submissions,
            )
        except Exception as exc:
            if self._is_stale(epoch, "batch_update"):
                return
            self._update(is_loading=False)
            self._show_error(exc)
            return

        if self._is_stale(epoch, "batch_update"):
            return

        self.logger.info("Remaining answers submitted", survey_id=survey.id, answers=len(submissions))
        self._finish()
        self._show_toast(ToastType.SUCCESS, Strings.SURVEY_SUBMITTED)

    async def _open_external_survey(self, survey: Survey) -> None:
        url = self.url_builder.build_url(survey, self.stop)
        if url is None:
            self.logger.warning("External survey URL unavailable", survey_id=survey.id)
            self._show_toast(ToastType.ERROR, Strings.SURVEY_EXTERNAL_LINK_FAILED)
            return

        try:
            await self.state_manager.set_survey_completed(survey.id)
        except Exception as exc:
            self._log_state_failure("external_survey", survey, exc)
            return

        self.logger.info("External survey opened", survey_id=survey.id)
        self._finish()
        self._update(open_external_survey=True, external_survey_url=url)

    # Internals

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_task_done, self._epoch))

    def _on_task_done(self, epoch: int, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.debug("Survey task cancelled", task=task.get_name(), epoch=epoch)
            return

        exc = task.exception()
        if exc is None:
            return

        self.logger.error(
            "Survey task failed",
            task=task.get_name(),
            epoch=epoch,
            error=str(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        if epoch == self._epoch:
            changes: Dict[str, Any] = {"is_loading": False}
            if self.state.phase == FlowPhase.LOADING:
                changes["phase"] = FlowPhase.IDLE
            self._update(**changes)
            self._show_toast(ToastType.ERROR, Strings.SURVEY_UNEXPECTED_ERROR)

    def _cancel_pending(self) -> None:
        self._epoch += 1
        for task in list(self._tasks):
            task.cancel()

    def _is_stale(self, epoch: int, operation: str) -> bool:
        if epoch == self._epoch:
            return False
        self.logger.info("Dropped stale survey result", operation=operation, epoch=epoch, current_epoch=self._epoch)
        return True

    def _finish(self) -> None:
        """Clear every on-screen artifact of the flow."""
        self._update(
            phase=FlowPhase.TERMINAL,
            survey=None,
            is_loading=False,
            hero_question=None,
            hero_answer=None,
            show_hero_question=False,
            questions=[],
            answers={},
            show_full_survey_questions=False,
            incomplete_question_ids=set(),
            answered_question_count=0,
            answerable_question_count=0,
            show_survey_dismiss_sheet=False,
        )

    def _log_state_failure(self, operation: str, survey: Optional[Survey], exc: Exception) -> None:
        self.logger.error(
            "Failed to store survey state",
            operation=operation,
            survey_id=survey.id if survey else None,
            error=str(exc),
            exc_info=True,
        )
        self._show_toast(ToastType.ERROR, Strings.SURVEY_UNEXPECTED_ERROR)

    def _show_error(self, error: BaseException) -> None:
        classified = classify(
            error,
            region_name=self.application.current_region_name,
            is_cellular_data_restricted=self.application.is_cellular_data_restricted,
            logger=self.logger,
        )
        self._show_toast(ToastType.ERROR, user_message_for(classified))

    def _show_toast(self, toast_type: ToastType, message: str) -> None:
        self._update(toast=Toast(type=toast_type, message=message), show_toast_message=True)

    @staticmethod
    def _count_answered(questions: Sequence[SurveyQuestion], answers: Dict[int, Answer]) -> int:
        return sum(
            1 for question in questions
            if question.is_answerable and not is_answer_empty(answers.get(question.id))
        )

    def _update(self, **changes: Any) -> None:
        self.state = replace(self.state, **changes)
        for observer in list(self._observers):
            try:
                observer(self.state)
            except Exception:
                self.logger.exception("Survey state observer failed")
