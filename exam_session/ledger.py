"""
Answer ledger and progress calculation.

The ledger is the single source of truth for what the user has done in a
session: one AnswerRecord slot per question id, never more.
"""

from __future__ import annotations

from collections import OrderedDict
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Union

from exam_session.logger import setup_logger
from exam_session.models import (
    AnswerRecord,
    Answered,
    ProgressSnapshot,
    Question,
    Selection,
    Skipped,
    SubjectProgress,
    Unanswered,
)
from exam_session.utils.exceptions import InvariantViolation
from exam_session.utils.helpers import check_invariant

logger = setup_logger(__name__)

LedgerView = Mapping[int, AnswerRecord]


class AnswerLedger:
    """
    Mapping of question id to AnswerRecord for one session.
    """

    def __init__(self, question_ids: Iterable[int], strict: bool = False) -> None:
        self.strict = strict
        self._records: Dict[int, AnswerRecord] = OrderedDict()
        for qid in question_ids:
            if qid in self._records:
                raise InvariantViolation(f"Duplicate question id {qid} in session")
            self._records[qid] = AnswerRecord(question_id=qid)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[int]:
        return iter(self._records)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._records

    def get(self, question_id: int) -> AnswerRecord:
        return self._records[question_id]

    def record_answer(self, question_id: int, selection: Union[int, Selection]) -> bool:
        """
        Upsert the selection for a question, keeping its accumulated time.

        Args:
            question_id: Question to update
            selection: An option id, SKIP, or UNANSWERED to clear

        Returns:
            True if the ledger changed
        """
        if not check_invariant(
            question_id in self._records,
            f"Answer for unknown question {question_id}",
            self.strict,
        ):
            return False

        if isinstance(selection, bool) or not isinstance(
            selection, (int, Answered, Skipped, Unanswered)
        ):
            raise TypeError(f"Unsupported selection: {selection!r}")
        if isinstance(selection, int):
            selection = Answered(option_id=selection)

        self._records[question_id] = self._records[question_id].with_selection(selection)
        return True

    def add_time(self, question_id: int, seconds: float) -> bool:
        """
        Accumulate time on a question without touching its selection.

        Negative amounts are rejected; time spent never decreases.
        """
        if not check_invariant(
            question_id in self._records,
            f"Time for unknown question {question_id}",
            self.strict,
        ):
            return False
        if not check_invariant(
            seconds >= 0, f"Negative time {seconds} for question {question_id}", self.strict
        ):
            return False
        if seconds == 0:
            return False

        self._records[question_id] = self._records[question_id].with_time(seconds)
        return True

    def snapshot(self) -> LedgerView:
        """Immutable copy of the ledger for autosave and submission."""
        return MappingProxyType(OrderedDict(self._records))

    def replace(self, records: Mapping[int, AnswerRecord]) -> None:
        """
        Replace every slot with the given records.

        Question ids missing from ``records`` become unanswered; ids the
        ledger does not know are an invariant violation.
        """
        unknown = [qid for qid in records if qid not in self._records]
        if unknown:
            check_invariant(False, f"Restored answers for unknown questions {unknown}", self.strict)

        self._records = OrderedDict(
            (qid, records[qid] if qid in records else AnswerRecord(question_id=qid))
            for qid in self._records
        )

    def total_time(self) -> float:
        return sum(r.time_spent_seconds for r in self._records.values())


def compute_progress(questions: Sequence[Question], ledger: LedgerView) -> ProgressSnapshot:
    """
    Derive answered/skipped/unanswered counts for a set of questions.

    Each question lands in exactly one bucket; a question with no ledger slot
    counts as unanswered.
    """
    answered = skipped = 0
    for q in questions:
        record = ledger.get(q.id)
        if record is None:
            continue
        if record.is_answered:
            answered += 1
        elif record.is_skipped:
            skipped += 1

    total = len(questions)
    unanswered = total - answered - skipped
    percent = round(answered / total * 100, 2) if total else 0.0
    return ProgressSnapshot(
        answered=answered,
        skipped=skipped,
        unanswered=unanswered,
        total=total,
        completion_percent=percent,
    )


def compute_subject_progress(
    questions: Sequence[Question], ledger: LedgerView
) -> List[SubjectProgress]:
    """
    Per-subject progress breakdown, sorted by subject name.
    """
    buckets: Dict[str, List[Question]] = {}
    for q in questions:
        buckets.setdefault(q.subject or "general", []).append(q)

    result: List[SubjectProgress] = []
    for subject in sorted(buckets):
        p = compute_progress(buckets[subject], ledger)
        result.append(
            SubjectProgress(
                subject=subject,
                answered=p.answered,
                skipped=p.skipped,
                unanswered=p.unanswered,
                total=p.total,
            )
        )
    return result
