"""
Timed assessment session engine.

ExamSessionEngine is the only owner of a Session. All mutation goes through
its methods, which run on a single asyncio event loop: timer callbacks,
navigation and answer recording are synchronous and cannot interleave, and
network calls are the only suspension points.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Tuple, Union

from exam_session.autosave import AutosaveScheduler
from exam_session.config import settings
from exam_session.ledger import LedgerView, compute_progress, compute_subject_progress
from exam_session.logger import setup_logger
from exam_session.models import (
    SKIP,
    UNANSWERED,
    AutosaveRequest,
    ExamResult,
    FinishReason,
    ProgressSnapshot,
    Question,
    Selection,
    SessionStatus,
    StartExamRequest,
    SubjectProgress,
    SubmissionReceipt,
    WireAnswer,
)
from exam_session.navigation import NavigationController
from exam_session.resume import ResumeLoader
from exam_session.session import Session
from exam_session.submission import SubmissionCoordinator
from exam_session.timer import CountdownTimer
from exam_session.utils.exceptions import ExamApiError, SessionStateError, SubmissionError
from exam_session.utils.helpers import check_invariant, format_time, time_band

logger = setup_logger(__name__)

FailureListener = Callable[[FinishReason, SubmissionError], None]
TickListener = Callable[[int, str, str], None]


class ExamSessionEngine:
    """
    Runs one timed exam attempt at a time: start or resume, answer and
    navigate, autosave in the background, and submit exactly once.
    """

    def __init__(
        self,
        client,
        clock: Callable[[], float] = time.monotonic,
        countdown_interval: Optional[float] = None,
        autosave_interval: Optional[float] = None,
        autosave_timeout: Optional[float] = None,
        strict: Optional[bool] = None,
        on_submit_failed: Optional[FailureListener] = None,
        on_tick: Optional[TickListener] = None,
    ) -> None:
        """
        Args:
            client: ExamApiClient (or anything with the same async methods).
            clock: Monotonic clock used for per-question time accounting.
            countdown_interval: Seconds per countdown tick.
            autosave_interval: Seconds between autosaves.
            autosave_timeout: Give up on one autosave push after this long.
            strict: Raise on invariant violations instead of clamping.
            on_submit_failed: Called when a submission fails and may be retried.
            on_tick: Called after every countdown tick with the remaining
                seconds, its display string and its time band.
        """
        self.client = client
        self.clock = clock
        self.countdown_interval = countdown_interval or settings.countdown_interval
        self.autosave_interval = autosave_interval or settings.autosave_interval
        self.autosave_timeout = autosave_timeout or settings.autosave_timeout
        self.strict = settings.strict_invariants if strict is None else strict
        self.on_submit_failed = on_submit_failed
        self.on_tick = on_tick

        self._resume_loader = ResumeLoader(client, strict=self.strict)
        self._session: Optional[Session] = None
        self._idle_status = SessionStatus.NOT_STARTED
        self._nav: Optional[NavigationController] = None
        self._countdown: Optional[CountdownTimer] = None
        self._autosave: Optional[AutosaveScheduler] = None
        self._coordinator: Optional[SubmissionCoordinator] = None
        self._suspended = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def status(self) -> SessionStatus:
        if self._session is None:
            return self._idle_status
        return self._session.status

    @property
    def session_id(self) -> Optional[str]:
        return self._session.id if self._session else None

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._session.questions if self._session else ()

    @property
    def time_limit_seconds(self) -> int:
        return self._session.time_limit_seconds if self._session else 0

    @property
    def remaining_seconds(self) -> int:
        return self._countdown.remaining_seconds if self._countdown else 0

    @property
    def elapsed_seconds(self) -> int:
        return max(0, self.time_limit_seconds - self.remaining_seconds)

    @property
    def cursor(self) -> int:
        return self._nav.cursor if self._nav else 0

    @property
    def current_question(self) -> Optional[Question]:
        if self._session is None or self._nav is None:
            return None
        return self._session.questions[self._nav.cursor]

    @property
    def answers(self) -> LedgerView:
        self._require_session()
        return self._session.ledger.snapshot()

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def countdown(self) -> Optional[CountdownTimer]:
        return self._countdown

    @property
    def autosave(self) -> Optional[AutosaveScheduler]:
        return self._autosave

    @property
    def receipt(self) -> Optional[SubmissionReceipt]:
        return self._coordinator.receipt if self._coordinator else None

    @property
    def last_submit_error(self) -> Optional[SubmissionError]:
        return self._coordinator.last_error if self._coordinator else None

    @property
    def last_saved(self) -> Optional[AutosaveRequest]:
        return self._autosave.last_acknowledged if self._autosave else None

    def progress(self) -> ProgressSnapshot:
        self._require_session()
        return compute_progress(self._session.questions, self._session.ledger.snapshot())

    def subject_progress(self) -> List[SubjectProgress]:
        self._require_session()
        return compute_subject_progress(self._session.questions, self._session.ledger.snapshot())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self, request: StartExamRequest) -> None:
        """
        Create a new session on the server and start the clocks.

        Raises:
            ExamApiError: If the server could not start the exam
        """
        self._ensure_can_open()
        logger.info(
            f"🚀 Starting {request.type.value} exam: {request.question_count} questions, "
            f"{request.time_limit_minutes} min, subjects={request.subjects}"
        )
        try:
            started = await self.client.start_exam(request)
        except ExamApiError as e:
            logger.error(f"🔥 Could not start exam: {e}")
            if self._session is None:
                self._idle_status = SessionStatus.FAILED
            raise

        session = Session(
            started.session_id, started.questions, started.time_limit_seconds, strict=self.strict
        )
        self._open(session, started.time_limit_seconds, cursor=0)

    async def resume(self, session_id: str) -> bool:
        """
        Replace local state with the server's snapshot of ``session_id``.

        Returns:
            False if there is no incomplete session to resume

        Raises:
            ResumeError: If the snapshot could not be fetched
        """
        self._ensure_can_open()
        restored = await self._resume_loader.load(session_id)
        if restored is None:
            return False

        session = Session(
            restored.session_id,
            restored.questions,
            restored.time_limit_seconds,
            strict=self.strict,
        )
        session.ledger.replace(restored.records)
        self._open(session, restored.remaining_seconds, cursor=restored.cursor)

        if restored.remaining_seconds == 0:
            logger.warning(f"⌛ Session {session.id} ran out of time while away")
            self._coordinator.begin(FinishReason.TIMEOUT)
        return True

    async def suspend(self) -> bool:
        """
        The app is going to the background or the user left the exam.

        Charges open time to the current question, stops both clocks and
        pushes one last snapshot. The session can be picked up later with
        resume().

        Returns:
            True if the final snapshot was acknowledged
        """
        if self.status is not SessionStatus.ACTIVE or self._suspended:
            return False

        self._nav.settle()
        self._teardown()
        self._suspended = True
        logger.info(f"⏸️  Session {self._session.id} suspended at {self.remaining_seconds}s")
        return await self._autosave.flush()

    def abandon(self) -> None:
        """Stop both clocks without saving, e.g. when the app is torn down."""
        self._teardown()
        if self.status is SessionStatus.ACTIVE:
            self._suspended = True

    async def finish(self, reason: FinishReason = FinishReason.MANUAL) -> Optional[SubmissionReceipt]:
        """
        Submit the session. Concurrent calls share one submission.

        A suspended session can be finished; time spent in the background is
        not charged to any question.

        Raises:
            SubmissionError: If the submission failed
            SessionStateError: If there is no session to finish
        """
        self._require_session()
        if self._suspended and self.status is SessionStatus.ACTIVE:
            self._nav.reanchor()
        return await self._coordinator.finish(reason)

    async def retry_submission(self) -> Optional[SubmissionReceipt]:
        """Retry after a failed submission, keeping the original reason."""
        self._require_session()
        reason = self._coordinator.last_reason or FinishReason.MANUAL
        return await self.finish(reason)

    async def wait_for_submission(self) -> Optional[SubmissionReceipt]:
        """
        Wait for a submission already in flight, e.g. one the countdown forced.

        Returns:
            The receipt, or None if nothing was submitted
        """
        if self._coordinator is None:
            return None
        task = self._coordinator.in_flight
        if task is not None:
            return await asyncio.shield(task)
        if self._coordinator.last_error is not None:
            raise self._coordinator.last_error
        return self._coordinator.receipt

    async def fetch_result(self) -> ExamResult:
        if self.status is not SessionStatus.COMPLETED:
            raise SessionStateError("Results are only available after submission")
        return await self.client.get_result(self._coordinator.receipt.result_id)

    # ------------------------------------------------------------------
    # Answering and navigation
    # ------------------------------------------------------------------
    def submit_answer(self, question_id: int, selection: Union[int, Selection]) -> bool:
        """
        Record a selection (option id, SKIP or UNANSWERED). The cursor does
        not move and time is left to the next navigation event.

        Returns:
            True if the ledger changed
        """
        self._require_active()
        if self.remaining_seconds == 0:
            raise SessionStateError("Time is up; answers can no longer change")

        question = self._session.question(question_id)
        if isinstance(selection, int) and not isinstance(selection, bool) and question is not None:
            if not check_invariant(
                question.has_option(selection),
                f"Option {selection} does not exist on question {question_id}",
                self.strict,
            ):
                return False
        return self._session.ledger.record_answer(question_id, selection)

    def skip(self, question_id: Optional[int] = None) -> bool:
        self._require_active()
        return self.submit_answer(self._current_id(question_id), SKIP)

    def clear_answer(self, question_id: Optional[int] = None) -> bool:
        self._require_active()
        return self.submit_answer(self._current_id(question_id), UNANSWERED)

    def goto(self, index: int) -> int:
        self._require_active()
        return self._nav.goto(index)

    def next(self) -> int:
        self._require_active()
        return self._nav.next()

    def previous(self) -> int:
        self._require_active()
        return self._nav.previous()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _open(self, session: Session, remaining_seconds: int, cursor: int) -> None:
        if self._session is not None:
            logger.info(f"🧹 Releasing session {self._session.id} locally")
        self._teardown()

        self._session = session
        self._suspended = False
        self._nav = NavigationController(
            session.question_ids, session.ledger, cursor=cursor, clock=self.clock, strict=self.strict
        )
        self._coordinator = SubmissionCoordinator(
            session,
            self.client,
            remaining_seconds=lambda: self.remaining_seconds,
            prepare=self._nav.settle,
            teardown=self._teardown,
            on_failure=self._on_submit_failure,
        )
        session.transition(SessionStatus.ACTIVE)
        self._start_clocks(remaining_seconds)

    def _start_clocks(self, remaining_seconds: int) -> None:
        previous = self._autosave
        self._countdown = CountdownTimer(
            remaining_seconds,
            on_expire=self._on_expire,
            interval=self.countdown_interval,
            on_tick=self._on_countdown_tick,
        )
        self._autosave = AutosaveScheduler(
            self._autosave_payload,
            self.client.autosave,
            interval=self.autosave_interval,
            timeout=self.autosave_timeout,
        )
        if previous is not None and self._session is not None:
            last = previous.last_acknowledged
            if last is not None and last.session_id == self._session.id:
                self._autosave.last_acknowledged = last
        if remaining_seconds > 0:
            self._countdown.start()
            self._autosave.start()

    def _teardown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
        if self._autosave is not None:
            self._autosave.cancel()

    def _on_countdown_tick(self, remaining: int) -> None:
        if self.on_tick is not None:
            self.on_tick(remaining, format_time(remaining), time_band(remaining))

    def _on_expire(self) -> None:
        self._coordinator.begin(FinishReason.TIMEOUT)

    def _on_submit_failure(self, reason: FinishReason, error: SubmissionError) -> None:
        self._nav.reanchor()
        if reason is FinishReason.MANUAL and self.remaining_seconds > 0 and not self._suspended:
            # Manual finish failed with time left: keep counting down
            self._start_clocks(self.remaining_seconds)
        if self.on_submit_failed is not None:
            self.on_submit_failed(reason, error)

    def _autosave_payload(self) -> AutosaveRequest:
        ledger = self._session.ledger.snapshot()
        return AutosaveRequest(
            session_id=self._session.id,
            answers={qid: WireAnswer.from_record(r) for qid, r in ledger.items()},
            cursor=self._nav.cursor,
            remaining_seconds=self.remaining_seconds,
        )

    def _current_id(self, question_id: Optional[int]) -> int:
        return self._nav.current_question_id if question_id is None else question_id

    def _ensure_can_open(self) -> None:
        if self.status is SessionStatus.SUBMITTING:
            raise SessionStateError("A submission is in flight")

    def _require_session(self) -> None:
        if self._session is None:
            raise SessionStateError("No exam session")

    def _require_active(self) -> None:
        self._require_session()
        if self._session.status is not SessionStatus.ACTIVE:
            raise SessionStateError(f"Session is {self._session.status.value}, not active")
        if self._suspended:
            raise SessionStateError("Session is suspended; resume it first")
