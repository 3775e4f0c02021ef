"""
Common utility functions.
"""

from exam_session.logger import setup_logger
from exam_session.utils.exceptions import InvariantViolation

logger = setup_logger(__name__)

CRITICAL_SECONDS = 300
WARNING_SECONDS = 900


def format_time(seconds: int) -> str:
    """
    Format a countdown value for display.

    Args:
        seconds: Remaining seconds (negative values display as 0)

    Returns:
        ``M:SS`` below one hour, ``H:MM:SS`` otherwise
    """
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def time_band(seconds: int) -> str:
    """
    Classify remaining time for the countdown colour.

    Returns:
        "critical" under 5 minutes, "warning" under 15 minutes, else "normal"
    """
    if seconds < CRITICAL_SECONDS:
        return "critical"
    if seconds < WARNING_SECONDS:
        return "warning"
    return "normal"


def check_invariant(condition: bool, message: str, strict: bool) -> bool:
    """
    Guard a session invariant.

    Args:
        condition: The invariant that should hold
        message: Description logged or raised when it does not
        strict: Raise instead of logging

    Returns:
        True if the invariant holds, False if it was violated in lenient mode

    Raises:
        InvariantViolation: If violated and strict is set
    """
    if condition:
        return True
    if strict:
        raise InvariantViolation(message)
    logger.warning(f"⚠️ Invariant violated (ignored): {message}")
    return False


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))
