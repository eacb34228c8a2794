"""Selects which survey to present from the fetched candidates."""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog

from survey_engine.survey_models import Stop, Survey, SurveyPreferences

logger = structlog.get_logger(__name__)


def eligible_surveys(
    surveys: Sequence[Survey],
    visible_on_stop: bool,
    stop: Optional[Stop] = None,
    now: Optional[datetime] = None,
) -> List[Survey]:
    """Drop surveys that are not visible in this context or outside their date window."""
    now = _as_utc(now or datetime.now(timezone.utc))
    result: List[Survey] = []

    for survey in surveys:
        if visible_on_stop:
            if not survey.show_on_stops:
                continue
            if _has_stop_scope(survey) and not _targets_stop(survey, stop):
                continue
        elif not survey.show_on_map:
            continue

        if survey.start_date is not None and now < _as_utc(survey.start_date):
            continue
        if survey.end_date is not None and now > _as_utc(survey.end_date):
            continue

        result.append(survey)

    return result


class SurveyPrioritizer:
    """Picks one survey index out of an already-filtered candidate list.

    Skipped surveys are never picked, and completed ones only when the survey
    accepts multiple responses. In stop context a survey that names this stop
    or one of its routes outranks an unscoped one. Any remaining tie goes to
    the earliest entry in the list.
    """

    def next_survey_index(
        self,
        surveys: Sequence[Survey],
        visible_on_stop: bool,
        stop: Optional[Stop] = None,
        preferences: Optional[SurveyPreferences] = None,
    ) -> Optional[int]:
        preferences = preferences or SurveyPreferences()

        best_index: Optional[int] = None
        best_rank = -1

        for index, survey in enumerate(surveys):
            if preferences.is_skipped(survey.id):
                continue
            if preferences.is_completed(survey.id) and not survey.allows_multiple_responses:
                continue

            rank = 1 if visible_on_stop and _targets_stop(survey, stop) else 0
            if rank > best_rank:
                best_index, best_rank = index, rank

        logger.debug(
            "Survey prioritized",
            candidates=len(surveys),
            selected_index=best_index,
            visible_on_stop=visible_on_stop,
        )
        return best_index


def _has_stop_scope(survey: Survey) -> bool:
    return bool(survey.visible_stops_list) or bool(survey.visible_routes_list)


def _targets_stop(survey: Survey, stop: Optional[Stop]) -> bool:
    if stop is None:
        return False
    if survey.visible_stops_list and stop.id in survey.visible_stops_list:
        return True
    if survey.visible_routes_list:
        return any(route_id in survey.visible_routes_list for route_id in stop.route_ids)
    return False


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
