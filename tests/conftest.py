"""
Shared fixtures: an in-memory exam backend and a hand-driven clock.
"""

import asyncio
from typing import List, Optional

import pytest

from exam_session.engine import ExamSessionEngine
from exam_session.models import (
    AutosaveRequest,
    ExamResult,
    ExamType,
    Question,
    ResumeSnapshot,
    StartedExam,
    StartExamRequest,
    SubmissionReceipt,
    SubmitRequest,
)
from exam_session.utils.exceptions import NetworkError, RequestRejectedError

SESSION_ID = "sess-1"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExamApi:
    """
    Backend double that stores the client's clock on autosave, the way a
    client-clock server would.
    """

    def __init__(self, questions: List[Question], time_limit_seconds: int = 90) -> None:
        self.questions = questions
        self.time_limit_seconds = time_limit_seconds
        self.start_calls: List[StartExamRequest] = []
        self.autosave_calls: List[AutosaveRequest] = []
        self.submit_calls: List[SubmitRequest] = []
        self.resume_calls: List[str] = []
        self.saved: Optional[AutosaveRequest] = None
        self.completed = False

        self.fail_start = False
        self.fail_autosave = 0
        self.fail_submit = 0
        self.fail_resume = False
        self.reject_submit = False
        self.submit_gate: Optional[asyncio.Event] = None

    async def start_exam(self, request: StartExamRequest) -> StartedExam:
        self.start_calls.append(request)
        if self.fail_start:
            raise NetworkError("backend unavailable", 503)
        return StartedExam(
            session_id=SESSION_ID,
            questions=self.questions,
            time_limit_seconds=self.time_limit_seconds,
        )

    async def autosave(self, request: AutosaveRequest) -> bool:
        self.autosave_calls.append(request)
        if self.fail_autosave:
            self.fail_autosave -= 1
            raise NetworkError("connection reset")
        self.saved = request
        return True

    async def submit_exam(self, request: SubmitRequest) -> SubmissionReceipt:
        self.submit_calls.append(request)
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.reject_submit:
            raise RequestRejectedError("exam already completed", 409)
        if self.fail_submit:
            self.fail_submit -= 1
            raise NetworkError("bad gateway", 502)
        self.completed = True
        return SubmissionReceipt(result_id=f"res-{len(self.submit_calls)}")

    async def resume_exam(self, session_id: str) -> Optional[ResumeSnapshot]:
        self.resume_calls.append(session_id)
        if self.fail_resume:
            raise NetworkError("timeout")
        if session_id != SESSION_ID or self.completed or self.saved is None:
            return None
        return ResumeSnapshot(
            session_id=SESSION_ID,
            questions=self.questions,
            answers=self.saved.answers,
            remaining_seconds=self.saved.remaining_seconds,
            cursor=self.saved.cursor,
            time_limit_seconds=self.time_limit_seconds,
        )

    async def get_result(self, result_id: str) -> ExamResult:
        return ExamResult(percentage=33.0, correct_answers=1, total_questions=len(self.questions))


def make_questions(count: int = 3) -> List[Question]:
    subjects = ["english", "mathematics", "physics"]
    return [
        Question(
            id=100 + i,
            question=f"Question {i + 1}?",
            options=["A", "B", "C", "D"],
            subject=subjects[i % len(subjects)],
        )
        for i in range(count)
    ]


START_REQUEST = StartExamRequest(
    type=ExamType.QUICK,
    subjects=["english", "mathematics", "physics"],
    time_limit_minutes=2,
    question_count=3,
)


def run_seconds(engine: ExamSessionEngine, clock: FakeClock, seconds: int) -> None:
    """Advance wall-clock time and fire one countdown tick per second."""
    for _ in range(seconds):
        clock.advance(1)
        engine.countdown.tick()


@pytest.fixture
def questions() -> List[Question]:
    return make_questions()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api(questions) -> FakeExamApi:
    return FakeExamApi(questions)


@pytest.fixture
async def engine(api, clock):
    # Long intervals: tests drive ticks by hand
    eng = ExamSessionEngine(
        api,
        clock=clock,
        countdown_interval=3600,
        autosave_interval=3600,
        autosave_timeout=1.0,
        strict=True,
    )
    yield eng
    eng.abandon()


@pytest.fixture
async def started(engine):
    await engine.start(START_REQUEST)
    return engine
