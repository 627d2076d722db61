from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from coursepay.config import settings

logger = logging.getLogger(__name__)


class EnrollmentError(RuntimeError):
    pass


class EnrollmentTrigger(Protocol):
    async def grant_access(self, student_id: str, course_id: str) -> None:
        """Grant course access; raise on failure."""
        ...


class HttpEnrollmentTrigger:
    """Calls the course service's enrollment endpoint.

    One POST per call and no retries: the reconciliation core decides what a
    failure means. A 409 means the student is already enrolled and counts as
    success.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def grant_access(self, student_id: str, course_id: str) -> None:
        if not self.base_url:
            raise EnrollmentError("ENROLLMENT_BASE_URL is not configured")
        url = f"{self.base_url}/api/enrollments"
        payload = {"student_id": student_id, "course_id": course_id, "source": "manual_payment"}
        try:
            resp = await self._client.post(url, json=payload, headers=self._headers())
        except httpx.TransportError as e:
            logger.warning("enrollment transport error", extra={"extra": {"course_id": course_id, "err": str(e)}})
            raise EnrollmentError(f"enrollment service unreachable: {e}") from e
        if resp.status_code == 409:
            logger.info("student already enrolled", extra={"extra": {"student_id": student_id, "course_id": course_id}})
            return
        if resp.status_code >= 400:
            raise EnrollmentError(f"enrollment service returned {resp.status_code}: {resp.text[:200]}")
        logger.info("enrollment granted", extra={"extra": {"student_id": student_id, "course_id": course_id}})

    async def aclose(self) -> None:
        await self._client.aclose()


_shared: Optional[HttpEnrollmentTrigger] = None


def get_enrollment_trigger() -> HttpEnrollmentTrigger:
    global _shared
    if _shared is None:
        _shared = HttpEnrollmentTrigger(
            settings.enrollment_base_url,
            settings.enrollment_api_token,
            timeout=settings.enrollment_timeout_seconds,
        )
    return _shared


async def aclose_shared() -> None:
    global _shared
    if _shared is not None:
        try:
            await _shared.aclose()
        finally:
            _shared = None
