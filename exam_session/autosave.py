"""
Periodic best-effort persistence of the answer ledger.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

from exam_session.config import settings
from exam_session.logger import setup_logger
from exam_session.models import AutosaveRequest
from exam_session.scheduler import RecurringTask
from exam_session.utils.exceptions import ExamApiError

logger = setup_logger(__name__)


class AutosaveScheduler:
    """
    Every ``interval`` seconds, snapshot the session and push it to the server
    in the background.

    The snapshot is taken synchronously when the tick fires, so it reflects
    every navigation that completed before the tick. The push itself never
    blocks the caller and a failed push is only logged: the next tick carries
    the same or newer state.
    """

    def __init__(
        self,
        build_payload: Callable[[], AutosaveRequest],
        push: Callable[[AutosaveRequest], Awaitable[object]],
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.build_payload = build_payload
        self.push = push
        self.timeout = timeout or settings.autosave_timeout
        self.last_acknowledged: Optional[AutosaveRequest] = None
        self.failures = 0
        self._inflight: Set[asyncio.Task] = set()
        self._task = RecurringTask(
            "autosave", interval or settings.autosave_interval, self.tick
        )

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self) -> None:
        self._task.start()

    def cancel(self) -> bool:
        """Stop ticking and abandon pushes still in flight."""
        cancelled = self._task.cancel()
        for task in list(self._inflight):
            task.cancel()
        return cancelled

    def tick(self) -> Optional[asyncio.Task]:
        """
        Snapshot now and push in the background.

        Returns:
            The background push task, or None once cancelled
        """
        if self._task.cancelled:
            return None

        payload = self.build_payload()

        # A newer snapshot supersedes any push that is still hanging
        for task in list(self._inflight):
            task.cancel()

        task = asyncio.get_running_loop().create_task(self._push(payload))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def flush(self) -> bool:
        """
        Push the current state once and wait for the outcome.

        Returns:
            True if the server acknowledged the snapshot
        """
        return await self._push(self.build_payload())

    async def _push(self, payload: AutosaveRequest) -> bool:
        try:
            acked = await asyncio.wait_for(self.push(payload), timeout=self.timeout)
        except (ExamApiError, asyncio.TimeoutError) as e:
            self.failures += 1
            logger.warning(
                f"⚠️ Autosave for {payload.session_id} failed, retrying next cycle: {e!r}"
            )
            return False

        if not acked:
            self.failures += 1
            logger.warning(f"⚠️ Autosave for {payload.session_id} was not acknowledged")
            return False

        self.last_acknowledged = payload
        logger.debug(
            f"💾 Autosaved {payload.session_id} "
            f"(cursor={payload.cursor}, remaining={payload.remaining_seconds}s)"
        )
        return True
