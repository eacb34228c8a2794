"""Tests for the survey backend client."""

import json

import httpx
import pytest

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
from survey_engine.services.survey_api_client import SurveyApiClient
from survey_engine.survey_models import QuestionAnswerSubmission, TextAnswer

BASE_URL = "https://surveys.example.com"

SURVEY_PAYLOAD = {
    "id": 1,
    "name": "Rider Satisfaction",
    "createdAt": "2024-01-01T00:00:00Z",
    "updatedAt": "2024-01-01T00:00:00Z",
    "study": {"id": 3, "name": "Transit Study"},
    "questions": [{"id": 11, "position": 1, "required": True, "content": {"type": "text", "labelText": "Why?"}}],
}


def _client(handler, **kwargs):
    kwargs.setdefault("user_id", "user-123")
    kwargs.setdefault("region_id", 1)
    return SurveyApiClient(BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


def _submission(make_question):
    return QuestionAnswerSubmission(question=make_question(11), answer=TextAnswer("Because"))


@pytest.mark.asyncio
async def test_fetch_surveys_decodes_region_list():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"surveys": [SURVEY_PAYLOAD]})

    async with _client(handler) as client:
        await client.fetch_surveys()

    assert requests[0].url.path == "/api/v1/regions/1/surveys.json"
    assert requests[0].url.params["user_id"] == "user-123"
    assert [survey.id for survey in client.surveys] == [1]


@pytest.mark.asyncio
async def test_fetch_surveys_rejects_unexpected_shape():
    async with _client(lambda request: httpx.Response(200, json=[SURVEY_PAYLOAD])) as client:
        with pytest.raises(DecodingError):
            await client.fetch_surveys()


@pytest.mark.asyncio
async def test_submit_then_update_uses_response_id(make_question):
    requests = []

    def handler(request):
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(201, json={"id": "abc123"})
        return httpx.Response(200, json={"id": "abc123"})

    async with _client(handler) as client:
        await client.submit_survey_response(1, "1_100", -122.3, 47.6, _submission(make_question))
        await client.update_survey_responses(1, "1_100", -122.3, 47.6, [_submission(make_question)])

    post, patch = requests
    assert post.url.path == "/api/v1/survey_responses.json"
    body = json.loads(post.content)
    assert body["survey_id"] == 1
    assert body["stop_identifier"] == "1_100"
    assert body["stop_latitude"] == 47.6
    assert body["responses"][0]["answer"] == "Because"
    assert patch.method == "PATCH"
    assert patch.url.path == "/api/v1/survey_responses/abc123.json"


@pytest.mark.asyncio
async def test_update_without_prior_submission(make_question):
    async with _client(lambda request: httpx.Response(200, json={})) as client:
        with pytest.raises(MissingUpdatePath):
            await client.update_survey_responses(1, None, None, None, [_submission(make_question)])


@pytest.mark.asyncio
async def test_missing_base_url_is_unavailable():
    client = SurveyApiClient("", user_id="user-123", region_id=1)

    with pytest.raises(SurveyServiceUnavailable):
        await client.fetch_surveys()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(404, json={}), RequestNotFound()),
        (httpx.Response(503, json={}), RequestFailure(status_code=503)),
        (httpx.Response(200, text="<html>Sign in</html>", headers={"content-type": "text/html"}), CaptivePortal()),
        (httpx.Response(200, content=b""), NoResponseBody()),
        (
            httpx.Response(200, text="surveys", headers={"content-type": "text/plain"}),
            InvalidContentType(expected_content_type="application/json", actual_content_type="text/plain"),
        ),
    ],
)
async def test_http_failures_are_mapped(response, expected):
    async with _client(lambda request: response) as client:
        with pytest.raises(type(expected)) as exc_info:
            await client.fetch_surveys()

    assert exc_info.value == expected


@pytest.mark.asyncio
async def test_invalid_json_is_decoding_error():
    response = httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"})

    async with _client(lambda request: response) as client:
        with pytest.raises(DecodingError):
            await client.fetch_surveys()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exception, code",
    [
        (httpx.ReadTimeout("timed out"), ConnectivityCode.TIMED_OUT),
        (httpx.ConnectTimeout("timed out"), ConnectivityCode.TIMED_OUT),
        (httpx.ConnectError("[Errno -2] Name or service not known"), ConnectivityCode.CANNOT_FIND_HOST),
        (httpx.ConnectError("[Errno 111] Connection refused"), ConnectivityCode.CANNOT_CONNECT_TO_HOST),
        (httpx.RemoteProtocolError("Server disconnected"), ConnectivityCode.CONNECTION_LOST),
        (httpx.ReadError("reset by peer"), ConnectivityCode.CONNECTION_LOST),
        (httpx.ProxyError("proxy refused"), ConnectivityCode.UNKNOWN),
    ],
)
async def test_transport_failures_become_connectivity_errors(exception, code):
    def handler(request):
        raise exception

    async with _client(handler) as client:
        with pytest.raises(ConnectivityError) as exc_info:
            await client.fetch_surveys()

    assert exc_info.value.code == code
