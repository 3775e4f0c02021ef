"""HTTP client against httpx.MockTransport."""

import json

import httpx
import pytest

from exam_session.client import ExamApiClient
from exam_session.models import (
    AutosaveRequest,
    ExamType,
    StartExamRequest,
    SubmitRequest,
    SubmittedAnswer,
    WireAnswer,
)
from exam_session.utils.exceptions import NetworkError, RequestRejectedError

QUESTION = {
    "id": 7,
    "question": "2 + 2 = ?",
    "options": ["3", "4", "5", "22"],
    "subject": "mathematics",
    "topic": "arithmetic",
}


def make_client(handler, **kwargs) -> ExamApiClient:
    return ExamApiClient(
        base_url="https://api.test",
        token="tok",
        backoff=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def test_start_exam_sends_camel_case_and_parses_questions():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"sessionId": "abc", "questions": [QUESTION], "timeLimitSeconds": 600}
        )

    async with make_client(handler) as client:
        started = await client.start_exam(
            StartExamRequest(
                type=ExamType.SUBJECT_SPECIFIC,
                subjects=["mathematics"],
                time_limit_minutes=10,
                question_count=1,
            )
        )

    assert seen["path"] == "/exam/start"
    assert seen["auth"] == "Bearer tok"
    assert seen["body"] == {
        "type": "subject_specific",
        "subjects": ["mathematics"],
        "timeLimitMinutes": 10,
        "questionCount": 1,
    }
    assert started.session_id == "abc"
    assert started.questions[0].options[1] == "4"
    assert started.time_limit_seconds == 600


async def test_resume_parses_snapshot():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "sessionId": 42,
                "questions": [QUESTION],
                "answers": {"7": {"optionId": 1, "timeSpent": 12}},
                "remainingSeconds": 300,
                "cursor": 0,
            },
        )

    async with make_client(handler) as client:
        snapshot = await client.resume_exam("42")

    assert snapshot.session_id == "42"
    assert snapshot.answers[7].option_id == 1
    assert snapshot.remaining_seconds == 300


@pytest.mark.parametrize(
    "response",
    [httpx.Response(200, json={"none": True}), httpx.Response(404, json={"error": "not found"})],
)
async def test_resume_nothing_to_resume(response):
    async with make_client(lambda request: response) as client:
        assert await client.resume_exam("missing") is None


async def test_get_is_retried_on_transient_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"exams": [], "total": 0})

    async with make_client(handler, max_retries=3) as client:
        page = await client.history(page=2, limit=5)

    assert len(calls) == 3
    assert calls[0].url.params["page"] == "2"
    assert page.total == 0


async def test_get_gives_up_after_max_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler, max_retries=2) as client:
        with pytest.raises(NetworkError):
            await client.get_result("r1")

    assert len(calls) == 2


async def test_submit_is_sent_once_and_keyed_by_session():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"error": "boom"})

    request = SubmitRequest(
        session_id="s1",
        answers=[SubmittedAnswer(question_id=7, selected_option_id=None, skipped=True, time_spent=3)],
        total_time_spent=30,
    )
    async with make_client(handler) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.submit_exam(request)

    assert exc_info.value.status_code == 500
    assert len(calls) == 1
    assert calls[0].headers["idempotency-key"] == "s1"
    body = json.loads(calls[0].content)
    assert body["totalTimeSpent"] == 30
    assert body["answers"][0] == {
        "questionId": 7,
        "selectedOptionId": None,
        "skipped": True,
        "timeSpent": 3,
    }


async def test_client_error_is_a_rejection():
    def handler(request):
        return httpx.Response(409, json={"error": "Mock exam not found or already completed"})

    async with make_client(handler) as client:
        with pytest.raises(RequestRejectedError) as exc_info:
            await client.submit_exam(SubmitRequest(session_id="s1", answers=[], total_time_spent=0))

    assert exc_info.value.status_code == 409
    assert "already completed" in str(exc_info.value)


async def test_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with make_client(handler) as client:
        with pytest.raises(NetworkError):
            await client.autosave(
                AutosaveRequest(session_id="s1", answers={}, cursor=0, remaining_seconds=10)
            )


@pytest.mark.parametrize(
    "error",
    [httpx.DecodingError("bad gzip"), httpx.TooManyRedirects("redirect loop")],
)
async def test_other_request_errors_are_transient(error):
    def handler(request):
        raise error

    async with make_client(handler) as client:
        with pytest.raises(NetworkError):
            await client.submit_exam(SubmitRequest(session_id="s1", answers=[], total_time_spent=0))


async def test_refused_autosave_is_reported():
    async with make_client(lambda request: httpx.Response(200, json={"ack": False})) as client:
        acked = await client.autosave(
            AutosaveRequest(session_id="s1", answers={}, cursor=0, remaining_seconds=10)
        )

    assert acked is False


async def test_autosave_payload_carries_cursor_and_clock():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"ack": True})

    async with make_client(handler) as client:
        acked = await client.autosave(
            AutosaveRequest(
                session_id="s1",
                answers={7: WireAnswer(option_id=2, time_spent=4.5)},
                cursor=3,
                remaining_seconds=120,
            )
        )

    assert acked is True
    assert seen == {
        "sessionId": "s1",
        "answers": {"7": {"optionId": 2, "skipped": False, "timeSpent": 4.5}},
        "cursor": 3,
        "remainingSeconds": 120,
    }


async def test_catalogue_and_recent_scores():
    def handler(request):
        if request.url.path == "/exam/available":
            return httpx.Response(
                200,
                json={
                    "exams": [
                        {
                            "id": "full_utme",
                            "title": "Full UTME Mock Exam",
                            "type": "full_utme",
                            "subjects": ["english", "physics"],
                            "questionCount": 180,
                            "timeLimit": 210,
                        }
                    ]
                },
            )
        return httpx.Response(
            200,
            json={"scores": [{"id": "e1", "examType": "quick", "percentage": 75, "correctAnswers": 3}]},
        )

    async with make_client(handler) as client:
        exams = await client.list_available_exams()
        scores = await client.recent_scores(limit=1)

    start = exams[0].to_start_request()
    assert start.time_limit_minutes == 210
    assert start.question_count == 180
    assert scores[0].exam_type is ExamType.QUICK
    assert scores[0].percentage == 75
