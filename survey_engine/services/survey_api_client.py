"""HTTP client for the survey backend."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from survey_engine.config import settings
from survey_engine.errors import (
    CaptivePortal,
    ConnectivityCode,
    ConnectivityError,
    DecodingError,
    InvalidContentType,
    MissingUpdatePath,
    NoResponseBody,
    RequestFailure,
    RequestNotFound,
    SurveyServiceUnavailable,
)
from survey_engine.survey_models import QuestionAnswerSubmission, Survey

_NAME_RESOLUTION_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


class SurveyApiClient:
    """Fetches surveys and submits answers.

    Raises API, connectivity and decoding errors untouched; turning them into
    user-facing messages is left to the caller.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        region_id: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else settings.survey_api_base_url).rstrip("/")
        self.user_id = user_id if user_id is not None else settings.survey_user_id
        self.region_id = region_id if region_id is not None else settings.survey_region_id
        self.timeout = timeout if timeout is not None else settings.survey_api_timeout
        self.transport = transport
        self.logger = structlog.get_logger(__name__)

        self.surveys: List[Survey] = []
        self._response_ids: Dict[int, str] = {}
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "SurveyApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if not self.base_url:
            raise SurveyServiceUnavailable()
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def fetch_surveys(self) -> None:
        """Load the survey list for the current region into ``self.surveys``."""
        if self.region_id is not None:
            path = f"/api/v1/regions/{self.region_id}/surveys.json"
        else:
            path = "/api/v1/surveys.json"

        body = await self._request("GET", path, params={"user_id": self.user_id})
        if not isinstance(body, dict) or not isinstance(body.get("surveys"), list):
            raise DecodingError("Survey list payload must be an object with a 'surveys' array")

        self.surveys = [Survey.from_dict(item) for item in body["surveys"]]
        self.logger.info("Surveys fetched", count=len(self.surveys), region_id=self.region_id)

    async def submit_survey_response(
        self,
        survey_id: int,
        stop_id: Optional[str],
        stop_longitude: Optional[float],
        stop_latitude: Optional[float],
        answer: QuestionAnswerSubmission,
    ) -> None:
        payload = self._response_payload(survey_id, stop_id, stop_longitude, stop_latitude, [answer])
        body = await self._request("POST", "/api/v1/survey_responses.json", json=payload, require_body=False)

        if isinstance(body, dict) and body.get("id") is not None:
            self._response_ids[survey_id] = str(body["id"])
        self.logger.info("Survey response submitted", survey_id=survey_id, question_id=answer.question_id)

    async def update_survey_responses(
        self,
        survey_id: int,
        stop_id: Optional[str],
        stop_longitude: Optional[float],
        stop_latitude: Optional[float],
        answers: Sequence[QuestionAnswerSubmission],
    ) -> None:
        response_id = self._response_ids.get(survey_id)
        if response_id is None:
            raise MissingUpdatePath()

        payload = self._response_payload(survey_id, stop_id, stop_longitude, stop_latitude, answers)
        await self._request(
            "PATCH",
            f"/api/v1/survey_responses/{response_id}.json",
            json=payload,
            require_body=False,
        )
        self.logger.info("Survey responses updated", survey_id=survey_id, answers=len(answers))

    def _response_payload(
        self,
        survey_id: int,
        stop_id: Optional[str],
        stop_longitude: Optional[float],
        stop_latitude: Optional[float],
        answers: Sequence[QuestionAnswerSubmission],
    ) -> Dict[str, Any]:
        return {
            "survey_id": survey_id,
            "user_identifier": self.user_id,
            "stop_identifier": stop_id,
            "stop_latitude": stop_latitude,
            "stop_longitude": stop_longitude,
            "responses": [answer.to_payload() for answer in answers],
        }

    async def _request(self, method: str, path: str, *, require_body: bool = True, **kwargs: Any) -> Any:
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            error = _connectivity_error(exc)
            self.logger.warning(
                "Survey API transport error",
                method=method,
                path=path,
                code=error.code.value,
                error=str(exc),
            )
            raise error from exc

        self.logger.debug("Survey API response", method=method, path=path, status_code=response.status_code)
        return _decode_response(response, require_body=require_body)


def _connectivity_error(exc: httpx.TransportError) -> ConnectivityError:
    if isinstance(exc, httpx.TimeoutException):
        return ConnectivityError(ConnectivityCode.TIMED_OUT, str(exc))
    if isinstance(exc, httpx.ConnectError):
        text = str(exc).lower()
        if any(marker in text for marker in _NAME_RESOLUTION_MARKERS):
            return ConnectivityError(ConnectivityCode.CANNOT_FIND_HOST, str(exc))
        return ConnectivityError(ConnectivityCode.CANNOT_CONNECT_TO_HOST, str(exc))
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)):
        return ConnectivityError(ConnectivityCode.CONNECTION_LOST, str(exc))
    return ConnectivityError(ConnectivityCode.UNKNOWN, str(exc))


def _decode_response(response: httpx.Response, *, require_body: bool) -> Any:
    if response.status_code == 404:
        raise RequestNotFound(status_code=404)
    if not response.is_success:
        raise RequestFailure(status_code=response.status_code)

    content_type = response.headers.get("content-type", "")
    if "text/html" in content_type:
        # A 2xx HTML page in place of JSON is what sign-in portals serve
        raise CaptivePortal()

    if not response.content:
        if require_body:
            raise NoResponseBody()
        return None

    if "json" not in content_type:
        raise InvalidContentType(expected_content_type="application/json", actual_content_type=content_type or None)

    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodingError(f"Response body is not valid JSON: {exc}") from exc
