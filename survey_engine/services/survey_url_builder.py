"""Builds external survey links with contextual query parameters."""

import re
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

import structlog

from survey_engine.services.application_context import RecentStopStore, SurveyApplicationContext
from survey_engine.survey_models import QuestionType, Stop, Survey, SurveyQuestion

_INVALID_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_WHITESPACE = re.compile(r"\s")

FieldResolver = Callable[[Optional[Stop]], Optional[str]]


class ExternalSurveyURLBuilder:
    """Resolves the base URL of an external survey and appends embedded data fields.

    Field names the builder does not know are ignored so the server can add new
    ones before clients support them.
    """

    def __init__(
        self,
        user_id: str,
        application: SurveyApplicationContext,
        recent_stops: RecentStopStore,
    ) -> None:
        self.user_id = user_id
        self.application = application
        self.recent_stops = recent_stops
        self.logger = structlog.get_logger(__name__)
        # Append order for recognised fields
        self._resolvers: Dict[str, FieldResolver] = {
            "user_id": self._user_id,
            "region_id": self._region_id,
            "stop_id": self._stop_id,
            "route_id": self._route_ids,
            "recent_stop_ids": self._recent_stop_ids,
            "current_location": self._current_location,
        }

    def build_url(self, survey: Survey, stop: Optional[Stop] = None) -> Optional[str]:
        """Return the external link for ``survey`` or ``None`` when it has no usable URL."""
        if not survey.questions:
            self.logger.warning("External survey has no questions", survey_id=survey.id)
            return None

        resolved = self._base_url(survey.questions)
        if resolved is None:
            self.logger.warning("External survey has no valid base URL", survey_id=survey.id)
            return None

        question, base_url = resolved
        requested = question.content.embedded_data_fields

        params: List[Tuple[str, str]] = []
        for name, resolver in self._resolvers.items():
            if name not in requested:
                continue
            value = resolver(stop)
            if value is not None:
                params.append((name, value))

        unknown = sorted(requested - self._resolvers.keys())
        if unknown:
            self.logger.debug("Ignoring unknown embedded data fields", fields=unknown, survey_id=survey.id)

        return _append_query(base_url, params)

    def _base_url(self, questions: Tuple[SurveyQuestion, ...]) -> Optional[Tuple[SurveyQuestion, str]]:
        linked = [question for question in questions if question.content.url]
        # External-survey questions first; the sort is stable so list order holds otherwise
        linked.sort(key=lambda question: question.content.type != QuestionType.EXTERNAL_SURVEY)
        for question in linked:
            url = question.content.url.strip()
            if _is_valid_url(url):
                return question, url
        return None

    def _user_id(self, stop: Optional[Stop]) -> Optional[str]:
        return self.user_id

    def _region_id(self, stop: Optional[Stop]) -> Optional[str]:
        region_id = self.application.current_region_identifier
        return None if region_id is None else str(region_id)

    def _stop_id(self, stop: Optional[Stop]) -> Optional[str]:
        return None if stop is None else stop.id

    def _route_ids(self, stop: Optional[Stop]) -> Optional[str]:
        if stop is None or not stop.route_ids:
            return None
        return ",".join(stop.route_ids)

    def _recent_stop_ids(self, stop: Optional[Stop]) -> Optional[str]:
        stop_ids = self.recent_stops.recent_stop_ids()
        if not stop_ids:
            return None
        return ",".join(stop_ids)

    def _current_location(self, stop: Optional[Stop]) -> Optional[str]:
        coordinate = self.application.current_coordinate
        if coordinate is None:
            return None
        return f"{float(coordinate.latitude)},{float(coordinate.longitude)}"


def _is_valid_url(url: str) -> bool:
    if not url or _WHITESPACE.search(url) or _INVALID_PERCENT_ESCAPE.search(url):
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def _append_query(url: str, params: List[Tuple[str, str]]) -> str:
    if not params:
        return url
    parts = urlsplit(url)
    extra = urlencode(params, quote_via=quote, safe=",")
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
