"""
Session object and its status state machine.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from exam_session.ledger import AnswerLedger
from exam_session.logger import setup_logger
from exam_session.models import Question, SessionStatus
from exam_session.utils.exceptions import SessionStateError
from exam_session.utils.helpers import check_invariant

logger = setup_logger(__name__)

_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.NOT_STARTED: frozenset({SessionStatus.ACTIVE, SessionStatus.FAILED}),
    SessionStatus.ACTIVE: frozenset({SessionStatus.SUBMITTING}),
    SessionStatus.SUBMITTING: frozenset(
        {SessionStatus.COMPLETED, SessionStatus.ACTIVE, SessionStatus.FAILED}
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}


class Session:
    """
    One timed attempt at an exam.

    Questions and the time limit are fixed for the lifetime of the object;
    status only changes through transition().
    """

    def __init__(
        self,
        session_id: str,
        questions: Iterable[Question],
        time_limit_seconds: int,
        strict: bool = False,
    ) -> None:
        unique: List[Question] = []
        seen = set()
        for q in questions:
            if check_invariant(q.id not in seen, f"Duplicate question {q.id} dropped", strict):
                seen.add(q.id)
                unique.append(q)
        if not unique:
            raise ValueError("A session needs at least one question")

        self.id = session_id
        self.questions: Tuple[Question, ...] = tuple(unique)
        self.time_limit_seconds = time_limit_seconds
        self.ledger = AnswerLedger((q.id for q in self.questions), strict=strict)
        self._by_id = {q.id: q for q in self.questions}
        self._status = SessionStatus.NOT_STARTED

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, status={self._status.value}, questions={len(self.questions)})"

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def question_ids(self) -> Tuple[int, ...]:
        return tuple(q.id for q in self.questions)

    def question(self, question_id: int) -> Optional[Question]:
        return self._by_id.get(question_id)

    def can_transition(self, new_status: SessionStatus) -> bool:
        return new_status in _TRANSITIONS[self._status]

    def transition(self, new_status: SessionStatus) -> None:
        """
        Move to ``new_status``.

        Raises:
            SessionStateError: If the move is not in the state machine
        """
        if not self.can_transition(new_status):
            raise SessionStateError(
                f"Session {self.id}: illegal transition "
                f"{self._status.value} -> {new_status.value}"
            )
        logger.info(f"🔀 Session {self.id}: {self._status.value} -> {new_status.value}")
        self._status = new_status
