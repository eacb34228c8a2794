"""Error types raised by the survey backend client and produced by the classifier.

``ApiError`` subclasses form a closed set of variants. The classifier only ever
returns one of these, a ``ConnectivityError`` upgraded into one of these, or the
error it was given untouched when it does not recognise it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from survey_engine.utils.strings import Strings


class ApiError(Exception):
    """Base class for backend errors with a user-facing message."""

    @property
    def user_message(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.user_message


@dataclass(eq=True)
class CaptivePortal(ApiError):
    @property
    def user_message(self) -> str:
        return Strings.CAPTIVE_PORTAL


@dataclass(eq=True)
class RequestNotFound(ApiError):
    status_code: int = 404

    @property
    def user_message(self) -> str:
        return Strings.REQUEST_NOT_FOUND


@dataclass(eq=True)
class NoResponseBody(ApiError):
    @property
    def user_message(self) -> str:
        return Strings.NO_RESPONSE_BODY


@dataclass(eq=True)
class InvalidContentType(ApiError):
    expected_content_type: str = "application/json"
    actual_content_type: Optional[str] = None

    @property
    def user_message(self) -> str:
        return Strings.INVALID_CONTENT_TYPE.format(actual=self.actual_content_type or "unknown")


@dataclass(eq=True)
class RequestFailure(ApiError):
    """Generic HTTP failure that has not been classified yet."""
    status_code: int

    @property
    def user_message(self) -> str:
        return Strings.REQUEST_FAILURE.format(status_code=self.status_code)


@dataclass(eq=True)
class ServerError(ApiError):
    """HTTP 500 from a known region; usually transient."""
    region_name: str

    @property
    def user_message(self) -> str:
        return Strings.SERVER_ERROR.format(region_name=self.region_name)


@dataclass(eq=True)
class ServerUnavailable(ApiError):
    """Region server is down: 502/503/504, unreachable host, or garbage payload."""
    region_name: str
    status_code: Optional[int] = None

    @property
    def user_message(self) -> str:
        return Strings.SERVER_UNAVAILABLE.format(region_name=self.region_name)


@dataclass(eq=True)
class NetworkFailure(ApiError):
    underlying: Optional[BaseException] = None

    @property
    def user_message(self) -> str:
        return Strings.NETWORK_FAILURE


@dataclass(eq=True)
class CellularDataRestricted(ApiError):
    @property
    def user_message(self) -> str:
        return Strings.CELLULAR_DATA_RESTRICTED


@dataclass(eq=True)
class UnstructuredError(ApiError):
    message: str

    @property
    def user_message(self) -> str:
        return self.message


class ConnectivityCode(str, Enum):
    """Symbolic transport-layer failure codes."""
    NOT_CONNECTED = "not_connected"
    CONNECTION_LOST = "connection_lost"
    DATA_NOT_ALLOWED = "data_not_allowed"
    TIMED_OUT = "timed_out"
    CANNOT_CONNECT_TO_HOST = "cannot_connect_to_host"
    CANNOT_FIND_HOST = "cannot_find_host"
    UNKNOWN = "unknown"


class ConnectivityError(Exception):
    """Raised when the request never produced an HTTP response."""

    def __init__(self, code: ConnectivityCode, message: str = "") -> None:
        super().__init__(message or code.value)
        self.code = code

    def __repr__(self) -> str:
        return f"ConnectivityError(code={self.code.value!r})"


class DecodingError(ValueError):
    """Raised when a backend payload cannot be turned into survey objects."""


class SurveyServiceError(Exception):
    """Base exception for survey service errors."""

    message = Strings.SURVEY_SERVICE_UNAVAILABLE

    def __str__(self) -> str:
        return self.message


class SurveyServiceUnavailable(SurveyServiceError):
    """Raised when no survey backend is configured."""
    message = Strings.SURVEY_SERVICE_UNAVAILABLE


class MissingUpdatePath(SurveyServiceError):
    """Raised when a batch update has no prior response to attach to."""
    message = Strings.SURVEY_MISSING_UPDATE_PATH


def user_message_for(error: BaseException) -> str:
    """Return display text for any error, preferring classified messages."""
    if isinstance(error, ApiError):
        return error.user_message
    if isinstance(error, SurveyServiceError):
        return error.message
    text = str(error)
    return text or Strings.SURVEY_UNEXPECTED_ERROR
