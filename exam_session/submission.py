"""
Exactly-once finalization of a session.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from pydantic import ValidationError

from exam_session.logger import setup_logger
from exam_session.models import (
    FinishReason,
    SessionStatus,
    SubmissionReceipt,
    SubmitRequest,
    SubmittedAnswer,
)
from exam_session.session import Session
from exam_session.utils.exceptions import (
    ExamApiError,
    RequestRejectedError,
    SessionStateError,
    SubmissionError,
)

logger = setup_logger(__name__)


class SubmissionCoordinator:
    """
    Runs the Active -> Submitting -> Completed path once per session.

    The Submitting status is the in-flight guard: while a submission is in
    flight every further finish request shares its outcome instead of
    sending another request. A transient failure returns the session to
    Active so the user can retry; a rejection by the server fails it.
    """

    def __init__(
        self,
        session: Session,
        client,
        remaining_seconds: Callable[[], int],
        prepare: Callable[[], object],
        teardown: Callable[[], object],
        on_failure: Optional[Callable[[FinishReason, SubmissionError], None]] = None,
    ) -> None:
        """
        Args:
            session: Session to finalize.
            client: Object with an async ``submit_exam(SubmitRequest)``.
            remaining_seconds: Reads the countdown at submission time.
            prepare: Called before the status changes (settles open time).
            teardown: Cancels the recurring tasks.
            on_failure: Called after a failed attempt left the session Active.
        """
        self.session = session
        self.client = client
        self.remaining_seconds = remaining_seconds
        self.prepare = prepare
        self.teardown = teardown
        self.on_failure = on_failure

        self.receipt: Optional[SubmissionReceipt] = None
        self.last_error: Optional[SubmissionError] = None
        self.last_reason: Optional[FinishReason] = None
        self.attempts = 0
        self._inflight: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> Optional[asyncio.Task]:
        return self._inflight

    def begin(self, reason: FinishReason) -> asyncio.Future:
        """
        Start finalizing synchronously and return the pending outcome.

        Safe to call from a timer callback. Calls made while a submission is
        in flight return that same submission.

        Raises:
            SessionStateError: If the session is neither Active, Submitting
                nor Completed
        """
        status = self.session.status

        if status is SessionStatus.SUBMITTING and self._inflight is not None:
            logger.info(f"🔁 Duplicate finish ({reason.value}) joined the in-flight submission")
            return self._inflight

        if status is SessionStatus.COMPLETED:
            done = asyncio.get_running_loop().create_future()
            done.set_result(self.receipt)
            return done

        if status is not SessionStatus.ACTIVE:
            raise SessionStateError(f"Cannot finish session {self.session.id} in status {status.value}")

        self.prepare()
        self.session.transition(SessionStatus.SUBMITTING)
        self.teardown()

        request = self.build_request()
        self.last_reason = reason
        self.attempts += 1
        logger.info(
            f"📤 Submitting session {self.session.id} ({reason.value}, attempt {self.attempts}, "
            f"{request.total_time_spent}s spent)"
        )

        task = asyncio.get_running_loop().create_task(self._transmit(request, reason))
        task.add_done_callback(_consume_outcome)
        self._inflight = task
        return task

    async def finish(self, reason: FinishReason) -> Optional[SubmissionReceipt]:
        """
        Finalize the session and wait for the outcome.

        Cancelling the caller does not cancel the submission itself.

        Raises:
            SubmissionError: If the submission failed
        """
        return await asyncio.shield(self.begin(reason))

    def build_request(self) -> SubmitRequest:
        remaining = self.remaining_seconds()
        total = max(0, self.session.time_limit_seconds - remaining)
        answers = [
            SubmittedAnswer.from_record(record)
            for record in self.session.ledger.snapshot().values()
        ]
        return SubmitRequest(
            session_id=self.session.id, answers=answers, total_time_spent=total
        )

    async def _transmit(self, request: SubmitRequest, reason: FinishReason) -> SubmissionReceipt:
        try:
            receipt = await self.client.submit_exam(request)
        except RequestRejectedError as e:
            self._inflight = None
            self.last_error = SubmissionError(f"Submission rejected: {e}", retryable=False)
            self.session.transition(SessionStatus.FAILED)
            logger.error(f"❌ Session {self.session.id} submission rejected: {e}")
            raise self.last_error from e
        except (ExamApiError, ValidationError) as e:
            self._fail_transient(reason, SubmissionError(f"Submission failed: {e}"))
            raise self.last_error from e
        except asyncio.CancelledError:
            self._fail_transient(reason, SubmissionError("Submission was cancelled"), notify=False)
            raise

        self.receipt = receipt
        self.last_error = None
        self.session.transition(SessionStatus.COMPLETED)
        logger.info(f"✅ Session {self.session.id} submitted (result {receipt.result_id})")
        return receipt

    def _fail_transient(
        self, reason: FinishReason, error: SubmissionError, notify: bool = True
    ) -> None:
        self._inflight = None
        self.last_error = error
        self.session.transition(SessionStatus.ACTIVE)
        logger.error(f"❌ Session {self.session.id}: {error}; retry is possible")
        if notify and self.on_failure is not None:
            self.on_failure(reason, error)


def _consume_outcome(task: asyncio.Task) -> None:
    # Timer-triggered submissions may have no awaiter
    if not task.cancelled():
        task.exception()
