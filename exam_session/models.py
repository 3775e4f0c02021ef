from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ----------------------------------------------------------------------
# Session state
# ----------------------------------------------------------------------
class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


class FinishReason(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"


class ExamType(str, Enum):
    FULL_UTME = "full_utme"
    SUBJECT_SPECIFIC = "subject_specific"
    QUICK = "quick"


class Unanswered(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["unanswered"] = "unanswered"


class Answered(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["answered"] = "answered"
    option_id: int = Field(..., ge=0)


class Skipped(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["skipped"] = "skipped"


Selection = Annotated[Union[Unanswered, Answered, Skipped], Field(discriminator="kind")]

UNANSWERED = Unanswered()
SKIP = Skipped()


class Question(BaseModel):
    """
    A question as shipped to the client. No answer key is ever present.

    Option ids are the positions in ``options``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    question: str = Field(..., min_length=1)
    options: List[str]
    subject: str = "general"
    topic: Optional[str] = None
    difficulty: Optional[str] = None

    @field_validator("options")
    @classmethod
    def validate_options_length(cls, v: List[str]) -> List[str]:
        if len(v) < 2:
            raise ValueError("A question needs at least 2 options")
        return v

    @property
    def option_ids(self) -> range:
        return range(len(self.options))

    def has_option(self, option_id: int) -> bool:
        return 0 <= option_id < len(self.options)


class AnswerRecord(BaseModel):
    """One ledger slot: what the user chose for a question and how long they spent on it."""

    model_config = ConfigDict(frozen=True)

    question_id: int
    selection: Selection = UNANSWERED
    time_spent_seconds: float = Field(default=0.0, ge=0)

    @property
    def is_answered(self) -> bool:
        return isinstance(self.selection, Answered)

    @property
    def is_skipped(self) -> bool:
        return isinstance(self.selection, Skipped)

    @property
    def option_id(self) -> Optional[int]:
        if isinstance(self.selection, Answered):
            return self.selection.option_id
        return None

    def with_selection(self, selection: Selection) -> AnswerRecord:
        return self.model_copy(update={"selection": selection})

    def with_time(self, seconds: float) -> AnswerRecord:
        return self.model_copy(
            update={"time_spent_seconds": self.time_spent_seconds + seconds}
        )


class ProgressSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    answered: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    unanswered: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    completion_percent: float = Field(..., ge=0, le=100)

    @model_validator(mode="after")
    def validate_buckets(self) -> ProgressSnapshot:
        if self.answered + self.skipped + self.unanswered != self.total:
            raise ValueError("Progress buckets must add up to the question count")
        return self


class SubjectProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    answered: int
    skipped: int
    unanswered: int
    total: int


# ----------------------------------------------------------------------
# Backend wire models (camelCase JSON)
# ----------------------------------------------------------------------
class ApiModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class StartExamRequest(ApiModel):
    """Request body for POST /exam/start."""

    type: ExamType
    subjects: List[str] = Field(..., min_length=1)
    time_limit_minutes: int = Field(..., ge=1, le=300, alias="timeLimitMinutes")
    question_count: int = Field(..., ge=1, le=200, alias="questionCount")


class StartedExam(ApiModel):
    """Response body for POST /exam/start."""

    session_id: str = Field(..., alias="sessionId")
    questions: List[Question] = Field(..., min_length=1)
    time_limit_seconds: int = Field(..., ge=1, alias="timeLimitSeconds")


class WireAnswer(ApiModel):
    option_id: Optional[int] = Field(default=None, alias="optionId")
    skipped: bool = False
    time_spent: float = Field(default=0.0, ge=0, alias="timeSpent")

    @classmethod
    def from_record(cls, record: AnswerRecord) -> WireAnswer:
        return cls(
            option_id=record.option_id,
            skipped=record.is_skipped,
            time_spent=round(record.time_spent_seconds, 3),
        )

    def to_record(self, question_id: int) -> AnswerRecord:
        if self.option_id is not None:
            selection: Selection = Answered(option_id=self.option_id)
        elif self.skipped:
            selection = SKIP
        else:
            selection = UNANSWERED
        return AnswerRecord(
            question_id=question_id,
            selection=selection,
            time_spent_seconds=self.time_spent,
        )


class ResumeSnapshot(ApiModel):
    """Response body for GET /exam/resume/{sessionId}."""

    session_id: str = Field(..., alias="sessionId")
    questions: List[Question] = Field(..., min_length=1)
    answers: Dict[int, WireAnswer] = Field(default_factory=dict)
    remaining_seconds: int = Field(..., ge=0, alias="remainingSeconds")
    cursor: int = 0
    time_limit_seconds: Optional[int] = Field(default=None, ge=1, alias="timeLimitSeconds")


class AutosaveRequest(ApiModel):
    """Request body for POST /exam/autosave."""

    session_id: str = Field(..., alias="sessionId")
    answers: Dict[int, WireAnswer]
    cursor: int
    remaining_seconds: int = Field(..., alias="remainingSeconds")


class SubmittedAnswer(ApiModel):
    question_id: int = Field(..., alias="questionId")
    selected_option_id: Optional[int] = Field(default=None, alias="selectedOptionId")
    skipped: bool = False
    time_spent: int = Field(..., ge=0, alias="timeSpent")

    @classmethod
    def from_record(cls, record: AnswerRecord) -> SubmittedAnswer:
        return cls(
            question_id=record.question_id,
            selected_option_id=record.option_id,
            skipped=record.is_skipped,
            time_spent=int(round(record.time_spent_seconds)),
        )


class SubmitRequest(ApiModel):
    """Request body for POST /exam/submit."""

    session_id: str = Field(..., alias="sessionId")
    answers: List[SubmittedAnswer]
    total_time_spent: int = Field(..., ge=0, alias="totalTimeSpent")


class SubmissionReceipt(ApiModel):
    result_id: str = Field(..., alias="resultId")


class SubjectScore(ApiModel):
    total: int
    correct: int
    percentage: float


class DetailedResult(ApiModel):
    question_id: int = Field(..., alias="questionId")
    question: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    selected_answer: Optional[int] = Field(default=None, alias="selectedAnswer")
    correct_answer: Optional[int] = Field(default=None, alias="correctAnswer")
    is_correct: bool = Field(default=False, alias="isCorrect")
    subject: Optional[str] = None
    topic: Optional[str] = None
    explanation: Optional[str] = None
    time_spent: int = Field(default=0, alias="timeSpent")


class ExamResult(ApiModel):
    """Response body for GET /exam/result/{resultId}."""

    percentage: float
    correct_answers: int = Field(..., alias="correctAnswers")
    total_questions: Optional[int] = Field(default=None, alias="totalQuestions")
    time_spent: Optional[int] = Field(default=None, alias="timeSpent")
    projected_score: Optional[int] = Field(default=None, alias="projectedUTMEScore")
    subject_breakdown: Dict[str, SubjectScore] = Field(
        default_factory=dict, alias="subjectBreakdown"
    )
    detailed_results: List[DetailedResult] = Field(
        default_factory=list, alias="detailedResults"
    )


class HistoryEntry(ApiModel):
    id: str
    type: Optional[ExamType] = None
    subjects: List[str] = Field(default_factory=list)
    total_questions: int = Field(default=0, alias="totalQuestions")
    correct_answers: Optional[int] = Field(default=None, alias="correctAnswers")
    percentage: Optional[float] = None
    time_spent: Optional[int] = Field(default=None, alias="timeSpent")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")


class ExamHistoryPage(ApiModel):
    exams: List[HistoryEntry] = Field(default_factory=list)
    total: int = 0


class AvailableExam(ApiModel):
    id: str
    title: str
    description: str = ""
    type: ExamType
    subjects: List[str] = Field(default_factory=list)
    question_count: int = Field(..., alias="questionCount")
    time_limit_minutes: int = Field(..., alias="timeLimit")
    difficulty: str = "mixed"

    def to_start_request(self) -> StartExamRequest:
        return StartExamRequest(
            type=self.type,
            subjects=self.subjects,
            time_limit_minutes=self.time_limit_minutes,
            question_count=self.question_count,
        )


class RecentScore(ApiModel):
    id: str
    exam_type: Optional[ExamType] = Field(default=None, alias="examType")
    subject: str = ""
    total_questions: int = Field(default=0, alias="totalQuestions")
    correct_answers: int = Field(default=0, alias="correctAnswers")
    percentage: float = 0.0
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
