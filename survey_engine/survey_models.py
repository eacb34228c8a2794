"""Survey value objects and their decoding from backend payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from survey_engine.errors import DecodingError


class QuestionType(str, Enum):
    """Kinds of survey question content."""
    LABEL = "label"
    TEXT = "text"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    EXTERNAL_SURVEY = "external_survey"


@dataclass(frozen=True)
class Study:
    """Research study a survey belongs to."""
    id: int
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class QuestionContent:
    label_text: str
    type: QuestionType
    options: Optional[Tuple[str, ...]] = None
    url: Optional[str] = None
    survey_provider: Optional[str] = None
    embedded_data_fields: FrozenSet[str] = frozenset()

    @property
    def is_label(self) -> bool:
        return self.type == QuestionType.LABEL


@dataclass(frozen=True)
class SurveyQuestion:
    id: int
    position: int
    required: bool
    content: QuestionContent

    @property
    def is_answerable(self) -> bool:
        """Label questions carry no answer and never count toward completion."""
        return not self.content.is_label


@dataclass(frozen=True)
class Survey:
    id: int
    name: str
    created_at: datetime
    updated_at: datetime
    study: Study
    questions: Tuple[SurveyQuestion, ...] = ()
    show_on_map: bool = True
    show_on_stops: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    visible_stops_list: Optional[Tuple[str, ...]] = None
    visible_routes_list: Optional[Tuple[str, ...]] = None
    allows_multiple_responses: bool = False
    allows_visible: bool = False

    @property
    def answerable_questions(self) -> Tuple[SurveyQuestion, ...]:
        return tuple(question for question in self.questions if question.is_answerable)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Survey":
        """Decode a survey from the backend's camelCase JSON representation."""
        if not isinstance(payload, Mapping):
            raise DecodingError(f"Expected survey object, got {type(payload).__name__}")

        try:
            questions = tuple(
                sorted(
                    (_decode_question(item) for item in payload.get("questions") or []),
                    key=lambda question: question.position,
                )
            )
            return cls(
                id=int(payload["id"]),
                name=str(payload["name"]),
                created_at=_parse_datetime(payload["createdAt"]),
                updated_at=_parse_datetime(payload["updatedAt"]),
                study=_decode_study(payload["study"]),
                questions=questions,
                show_on_map=bool(payload.get("showOnMap", True)),
                show_on_stops=bool(payload.get("showOnStops", False)),
                start_date=_parse_optional_datetime(payload.get("startDate")),
                end_date=_parse_optional_datetime(payload.get("endDate")),
                visible_stops_list=_optional_str_tuple(payload.get("visibleStopsList")),
                visible_routes_list=_optional_str_tuple(payload.get("visibleRoutesList")),
                allows_multiple_responses=bool(payload.get("allowsMultipleResponses", False)),
                allows_visible=bool(payload.get("allowsVisible", False)),
            )
        except DecodingError:
            raise
        except KeyError as exc:
            raise DecodingError(f"Missing survey field: {exc.args[0]}") from exc
        except (TypeError, ValueError) as exc:
            raise DecodingError(f"Invalid survey payload: {exc}") from exc


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Stop:
    """Transit stop the survey may be scoped to."""
    id: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    route_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TextAnswer:
    text: str

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_wire(self) -> str:
        return self.text


@dataclass(frozen=True)
class ChoiceAnswer:
    choices: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not any(choice.strip() for choice in self.choices)

    def to_wire(self) -> str:
        return ",".join(self.choices)


Answer = Union[TextAnswer, ChoiceAnswer]


def is_answer_empty(answer: Optional[Answer]) -> bool:
    return answer is None or answer.is_empty


@dataclass(frozen=True)
class QuestionAnswerSubmission:
    question: SurveyQuestion
    answer: Answer

    @property
    def question_id(self) -> int:
        return self.question.id

    def to_payload(self) -> Dict[str, Any]:
        return {
            "question_id": self.question.id,
            "question_type": self.question.content.type.value,
            "question_label": self.question.content.label_text,
            "answer": self.answer.to_wire(),
        }


def _decode_study(payload: Any) -> Study:
    if not isinstance(payload, Mapping):
        raise DecodingError("Expected study object")
    return Study(
        id=int(payload["id"]),
        name=str(payload["name"]),
        description=payload.get("description"),
    )


def _decode_question(payload: Any) -> SurveyQuestion:
    if not isinstance(payload, Mapping):
        raise DecodingError("Expected question object")
    return SurveyQuestion(
        id=int(payload["id"]),
        position=int(payload.get("position", 0)),
        required=bool(payload.get("required", False)),
        content=_decode_content(payload["content"]),
    )


def _decode_content(payload: Any) -> QuestionContent:
    if not isinstance(payload, Mapping):
        raise DecodingError("Expected question content object")

    raw_type = payload["type"]
    try:
        question_type = QuestionType(raw_type)
    except ValueError as exc:
        raise DecodingError(f"Unknown question type: {raw_type!r}") from exc

    return QuestionContent(
        label_text=str(payload.get("labelText", "")),
        type=question_type,
        options=_optional_str_tuple(payload.get("options")),
        url=_optional_str(payload.get("url")),
        survey_provider=_optional_str(payload.get("surveyProvider")),
        embedded_data_fields=frozenset(_optional_str_tuple(payload.get("embeddedDataFields")) or ()),
    )


def _optional_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise DecodingError(f"Expected string, got {type(value).__name__}")


def _optional_str_tuple(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise DecodingError(f"Expected list of strings, got {type(value).__name__}")
    return tuple(str(item) for item in value)


def _parse_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise DecodingError(f"Expected ISO-8601 timestamp, got {type(value).__name__}")
    try:
        # Python < 3.11 does not accept the trailing "Z"
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise DecodingError(f"Invalid timestamp: {value!r}") from exc


def _parse_optional_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return _parse_datetime(value)


@dataclass(frozen=True)
class SurveyPreferences:
    """Snapshot of persisted per-survey engagement state."""
    completed_survey_ids: FrozenSet[int] = frozenset()
    skipped_survey_ids: FrozenSet[int] = frozenset()
    next_reminder_at: Optional[datetime] = None

    def is_completed(self, survey_id: int) -> bool:
        return survey_id in self.completed_survey_ids

    def is_skipped(self, survey_id: int) -> bool:
        return survey_id in self.skipped_survey_ids
