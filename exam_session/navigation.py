"""
Question cursor with per-question time accounting.
"""

import time
from typing import Callable, Sequence

from exam_session.ledger import AnswerLedger
from exam_session.logger import setup_logger
from exam_session.utils.helpers import check_invariant, clamp

logger = setup_logger(__name__)


class NavigationController:
    """
    Moves the active-question cursor.

    Every move first charges the wall-clock time since the previous move (or
    since the controller was anchored) to the question being left, then
    updates the cursor and resets the reference point. The sum of time spent
    across the ledger therefore tracks the time the session was active,
    whatever the navigation pattern.
    """

    def __init__(
        self,
        question_ids: Sequence[int],
        ledger: AnswerLedger,
        cursor: int = 0,
        clock: Callable[[], float] = time.monotonic,
        strict: bool = False,
    ) -> None:
        if not question_ids:
            raise ValueError("A session needs at least one question")
        self.question_ids = tuple(question_ids)
        self.ledger = ledger
        self.clock = clock
        self.strict = strict

        last = len(self.question_ids) - 1
        check_invariant(0 <= cursor <= last, f"Cursor {cursor} out of range 0..{last}", strict)
        self._cursor = clamp(cursor, 0, last)
        self._mark = clock()

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current_question_id(self) -> int:
        return self.question_ids[self._cursor]

    def elapsed_on_current(self) -> float:
        """Seconds since the cursor last moved (not yet in the ledger)."""
        return max(0.0, self.clock() - self._mark)

    def goto(self, index: int) -> int:
        """
        Move to ``index`` (clamped to the question range).

        Returns:
            The new cursor
        """
        self.settle()
        self._cursor = clamp(index, 0, len(self.question_ids) - 1)
        return self._cursor

    def next(self) -> int:
        return self.goto(self._cursor + 1)

    def previous(self) -> int:
        return self.goto(self._cursor - 1)

    def settle(self) -> float:
        """
        Charge elapsed time to the current question without moving.

        Returns:
            Seconds charged
        """
        now = self.clock()
        elapsed = now - self._mark
        self._mark = now
        if elapsed < 0:
            # Clock went backwards
            logger.warning(f"⚠️ Negative elapsed time {elapsed:.3f}s ignored")
            return 0.0
        self.ledger.add_time(self.current_question_id, elapsed)
        return elapsed

    def reanchor(self) -> None:
        """Drop uncharged time, e.g. after the session was suspended."""
        self._mark = self.clock()
