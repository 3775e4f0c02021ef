"""
HTTP client for the exam backend, with retry logic and error mapping.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from exam_session.config import settings
from exam_session.logger import setup_logger
from exam_session.models import (
    AutosaveRequest,
    AvailableExam,
    ExamHistoryPage,
    ExamResult,
    RecentScore,
    ResumeSnapshot,
    StartedExam,
    StartExamRequest,
    SubmissionReceipt,
    SubmitRequest,
)
from exam_session.utils.exceptions import ExamApiError, NetworkError, RequestRejectedError

logger = setup_logger(__name__)

# 4xx codes that are worth retrying
_TRANSIENT_STATUS = {408, 425, 429}


class ExamApiClient:
    """
    Async client for the exam endpoints.

    GET requests are idempotent and retried with exponential backoff.
    POST requests are sent once: autosave retries on its next cycle and a
    failed submit is retried by the user.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            base_url: API root (default settings.api_base_url)
            token: Bearer token for the signed-in user
            timeout: Request timeout in seconds
            max_retries: Attempts per GET request
            backoff: Base delay for exponential backoff
            transport: Custom httpx transport (used by tests)
        """
        self.max_retries = max_retries or settings.max_retries
        self.backoff = settings.retry_backoff if backoff is None else backoff

        headers = {"Accept": "application/json", "User-Agent": "exam-session/1.0"}
        token = token or settings.api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            headers=headers,
            timeout=timeout or settings.request_timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ExamApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    async def start_exam(self, request: StartExamRequest) -> StartedExam:
        data = await self._post("/exam/start", request.to_payload())
        return StartedExam.model_validate(data)

    async def resume_exam(self, session_id: str) -> Optional[ResumeSnapshot]:
        """
        Fetch the server-held snapshot of an interrupted session.

        Returns:
            The snapshot, or None if there is nothing to resume
        """
        try:
            data = await self._get(f"/exam/resume/{session_id}")
        except RequestRejectedError as e:
            if e.status_code == 404:
                return None
            raise
        if not data or data.get("none"):
            return None
        return ResumeSnapshot.model_validate(data)

    async def autosave(self, request: AutosaveRequest) -> bool:
        data = await self._post("/exam/autosave", request.to_payload())
        return bool(data.get("ack", True))

    async def submit_exam(self, request: SubmitRequest) -> SubmissionReceipt:
        data = await self._post(
            "/exam/submit",
            request.to_payload(),
            headers={"Idempotency-Key": request.session_id},
        )
        return SubmissionReceipt.model_validate(data)

    # ------------------------------------------------------------------
    # Results and catalogue
    # ------------------------------------------------------------------
    async def get_result(self, result_id: str) -> ExamResult:
        return ExamResult.model_validate(await self._get(f"/exam/result/{result_id}"))

    async def history(self, page: int = 1, limit: int = 20) -> ExamHistoryPage:
        data = await self._get("/exam/history", params={"page": page, "limit": limit})
        return ExamHistoryPage.model_validate(data)

    async def list_available_exams(self) -> List[AvailableExam]:
        data = await self._get("/exam/available")
        return [AvailableExam.model_validate(item) for item in data.get("exams", [])]

    async def recent_scores(self, limit: int = 10) -> List[RecentScore]:
        data = await self._get("/exam/recent-scores", params={"limit": limit})
        return [RecentScore.model_validate(item) for item in data.get("scores", [])]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._send("GET", path, params=params)
            except NetworkError as e:
                logger.warning(
                    f"⚠️ GET {path} failed on attempt {attempt}/{self.max_retries}: {e}"
                )
                if attempt == self.max_retries:
                    raise
                await asyncio.sleep(self.backoff * 2 ** (attempt - 1))

        raise NetworkError(f"GET {path} failed after all retries")

    async def _post(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        return await self._send("POST", path, json=payload, headers=headers)

    async def _send(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            if status >= 500 or status in _TRANSIENT_STATUS:
                raise NetworkError(f"{method} {path}: HTTP {status} {detail}", status) from e
            raise RequestRejectedError(f"{method} {path}: HTTP {status} {detail}", status) from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path}: timeout") from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path}: {e}") from e
        except httpx.RequestError as e:
            # Decoding errors, redirect loops
            raise NetworkError(f"{method} {path}: {type(e).__name__}: {e}") from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise ExamApiError(f"{method} {path}: invalid JSON response", response.status_code) from e
        if not isinstance(data, dict):
            raise ExamApiError(f"{method} {path}: expected a JSON object", response.status_code)
        return data


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or "")
    return ""
