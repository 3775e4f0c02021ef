"""
Session countdown with forced submission at zero.
"""

from typing import Callable, Optional

from exam_session.config import settings
from exam_session.logger import setup_logger
from exam_session.scheduler import RecurringTask

logger = setup_logger(__name__)


class CountdownTimer:
    """
    Decrements the remaining exam time once per tick and fires ``on_expire``
    exactly once when it crosses from 1 to 0.

    A timer instance is single-use: after cancel() it never ticks again. Start
    a new instance (anchored to ``remaining_seconds``) to resume counting.
    """

    def __init__(
        self,
        remaining_seconds: int,
        on_expire: Callable[[], None],
        interval: Optional[float] = None,
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> None:
        """
        Args:
            remaining_seconds: Starting value, clamped at 0.
            on_expire: Called synchronously on the zero crossing.
            interval: Seconds per tick (default settings.countdown_interval).
            on_tick: Optional observer called with the new remaining value.
        """
        self._remaining = max(0, int(remaining_seconds))
        self.on_expire = on_expire
        self.on_tick = on_tick
        self._expired = False
        self._task = RecurringTask(
            "countdown", interval or settings.countdown_interval, self.tick
        )

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self) -> None:
        """Start ticking on the running event loop."""
        self._task.start()
        logger.info(f"⏱️  Countdown started ({self._remaining}s remaining)")

    def cancel(self) -> bool:
        return self._task.cancel()

    def tick(self) -> None:
        """One second elapsed."""
        if self._expired or self._task.cancelled or self._remaining <= 0:
            return

        self._remaining -= 1
        if self.on_tick is not None:
            self.on_tick(self._remaining)

        if self._remaining == 0:
            self._expired = True
            logger.warning("⌛ Time is up, forcing submission")
            try:
                self.on_expire()
            finally:
                self.cancel()
