"""Custom exceptions for the exam session engine."""

from typing import Optional


class ExamSessionError(Exception):
    """Base exception for session engine errors."""

    pass


class ExamApiError(ExamSessionError):
    """Backend API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(ExamApiError):
    """Transient failure: transport error, timeout, 5xx, 408 or 429."""

    pass


class RequestRejectedError(ExamApiError):
    """The backend refused the request (non-transient 4xx)."""

    pass


class SubmissionError(ExamSessionError):
    """Final submission failed; the caller should offer a retry."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class ResumeError(ExamSessionError):
    """A requested resume could not be completed."""

    pass


class SessionStateError(ExamSessionError):
    """Operation not allowed in the session's current status."""

    pass


class InvariantViolation(ExamSessionError):
    """Internal session invariant broken (raised in strict mode only)."""

    pass
