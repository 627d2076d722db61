from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursepay.db.models import ClaimStatus, PaymentRequest
from coursepay.db.repository import ClaimFilter, PaymentRequestRepository
from coursepay.db.session import get_session_maker
from coursepay.payment.errors import NotFound, ValidationError
from coursepay.services.security import Principal, require_authenticated, require_staff

MAX_PAGE_SIZE = 200


class ClaimQueries:
    """Read side: staff see every claim, students only their own."""

    def __init__(self, sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._sessionmaker = sessionmaker or get_session_maker()

    async def get_claim(self, principal: Optional[Principal], request_id: int) -> PaymentRequest:
        caller = require_authenticated(principal)
        async with self._sessionmaker() as session:
            claim = await PaymentRequestRepository(session).get(request_id)
        # Other students' claims are reported as missing rather than forbidden
        if claim is None or (not caller.is_staff and claim.student_id != caller.id):
            raise NotFound(f"payment request #{request_id} not found")
        return claim

    async def list_claims(
        self,
        principal: Optional[Principal],
        *,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[PaymentRequest]:
        caller = require_authenticated(principal)
        statuses = None
        if status and status != "all":
            try:
                statuses = [ClaimStatus(status).value]
            except ValueError:
                raise ValidationError(f"unknown status: {status}", field="status") from None
        flt = ClaimFilter(
            student_id=None if caller.is_staff else caller.id,
            statuses=statuses,
            search=search,
            limit=max(1, min(int(limit), MAX_PAGE_SIZE)),
            offset=max(0, int(offset)),
        )
        async with self._sessionmaker() as session:
            return await PaymentRequestRepository(session).list_by_filter(flt)

    async def claim_stats(self, principal: Optional[Principal]) -> Dict[str, int]:
        require_staff(principal)
        async with self._sessionmaker() as session:
            return await PaymentRequestRepository(session).count_by_status()
