"""
Cancellable recurring tasks on the asyncio event loop.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from exam_session.logger import setup_logger

logger = setup_logger(__name__)


class RecurringTask:
    """
    Calls ``callback`` every ``interval`` seconds until cancelled.

    The callback runs synchronously on the loop, so it never interleaves with
    other session mutations. Once cancelled the callback is never invoked
    again, even if a sleep was already about to wake up.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.callback = callback
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._cancelled and not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        if self._cancelled:
            raise RuntimeError(f"{self.name} was cancelled and cannot be restarted")
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)
        logger.debug(f"{self.name} started (every {self.interval}s)")

    def cancel(self) -> bool:
        """
        Stop the task. Safe to call repeatedly and from inside the callback.

        Returns:
            True on the first effective cancellation, False afterwards
        """
        if self._cancelled:
            return False
        self._cancelled = True
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.debug(f"{self.name} cancelled")
        return True

    async def _run(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self.interval)
            if self._cancelled:
                break
            try:
                self.callback()
            except Exception:
                logger.exception(f"❌ {self.name} tick failed; still running")


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        # No running loop
        return None
