"""
Rebuild an interrupted session from the server-held snapshot.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from pydantic import ValidationError

from exam_session.logger import setup_logger
from exam_session.models import UNANSWERED, AnswerRecord, Question, ResumeSnapshot
from exam_session.utils.exceptions import ExamApiError, ResumeError
from exam_session.utils.helpers import check_invariant, clamp

logger = setup_logger(__name__)


@dataclass(frozen=True)
class RestoredSession:
    session_id: str
    questions: Tuple[Question, ...]
    records: Dict[int, AnswerRecord]
    remaining_seconds: int
    cursor: int
    time_limit_seconds: int


class ResumeLoader:
    """
    Fetches a resume snapshot and turns it into state the engine can adopt
    wholesale. The server copy is authoritative: nothing is merged with
    whatever the client still holds.
    """

    def __init__(self, client, strict: bool = False) -> None:
        self.client = client
        self.strict = strict

    async def load(self, session_id: str) -> Optional[RestoredSession]:
        """
        Returns:
            The restored state, or None when there is nothing to resume

        Raises:
            ResumeError: If the snapshot could not be fetched or parsed
        """
        logger.info(f"📥 Resuming session {session_id}")
        try:
            snapshot = await self.client.resume_exam(session_id)
        except (ExamApiError, ValidationError) as e:
            logger.error(f"❌ Resume of {session_id} failed: {e}")
            raise ResumeError(f"Could not resume session {session_id}: {e}") from e

        if snapshot is None:
            logger.info(f"ℹ️  Nothing to resume for {session_id}")
            return None
        return self.restore(snapshot)

    def restore(self, snapshot: ResumeSnapshot) -> RestoredSession:
        questions = {q.id: q for q in snapshot.questions}

        records: Dict[int, AnswerRecord] = {}
        for qid, wire in snapshot.answers.items():
            if not check_invariant(qid in questions, f"Snapshot answer for unknown question {qid}", self.strict):
                continue
            record = wire.to_record(qid)
            option_id = record.option_id
            if option_id is not None and not check_invariant(
                questions[qid].has_option(option_id),
                f"Snapshot option {option_id} out of range for question {qid}",
                self.strict,
            ):
                record = record.with_selection(UNANSWERED)
            records[qid] = record

        time_limit = snapshot.time_limit_seconds
        if time_limit is None:
            spent = sum(r.time_spent_seconds for r in records.values())
            time_limit = max(1, snapshot.remaining_seconds + math.ceil(spent))

        remaining = snapshot.remaining_seconds
        if not check_invariant(
            remaining <= time_limit,
            f"Remaining {remaining}s exceeds the {time_limit}s limit",
            self.strict,
        ):
            remaining = time_limit

        last = len(snapshot.questions) - 1
        cursor = snapshot.cursor
        check_invariant(0 <= cursor <= last, f"Snapshot cursor {cursor} out of range 0..{last}", self.strict)

        restored = RestoredSession(
            session_id=snapshot.session_id,
            questions=tuple(snapshot.questions),
            records=records,
            remaining_seconds=remaining,
            cursor=clamp(cursor, 0, last),
            time_limit_seconds=time_limit,
        )
        logger.info(
            f"✅ Restored {restored.session_id}: {len(records)} answer(s), "
            f"{remaining}s remaining, cursor {restored.cursor}"
        )
        return restored
