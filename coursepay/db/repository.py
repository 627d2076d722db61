"""Claim store primitives.

Every mutation of ``payment_requests`` goes through one of two atomic
primitives: an insert guarded by the unique
(student_id, course_id, active_slot) constraint, or an
UPDATE whose WHERE clause pins the expected status. Nothing here reads a row
and then writes it back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.db.models import ACTIVE_STATUSES, ClaimStatus, PaymentRequest
from coursepay.utils.time import utc_now

logger = logging.getLogger(__name__)

_INSERT_ATTEMPTS = 3


@dataclass
class ClaimFilter:
    student_id: Optional[str] = None
    course_id: Optional[str] = None
    statuses: Optional[Sequence[str]] = None
    search: Optional[str] = None
    needs_enrollment: bool = False
    limit: Optional[int] = None
    offset: int = 0


class PaymentRequestRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, request_id: int, *, refresh: bool = False) -> Optional[PaymentRequest]:
        return await self.session.get(PaymentRequest, request_id, populate_existing=refresh)

    async def find_active(self, student_id: str, course_id: str) -> Optional[PaymentRequest]:
        return await self.session.scalar(
            select(PaymentRequest).where(
                PaymentRequest.student_id == student_id,
                PaymentRequest.course_id == course_id,
                PaymentRequest.active_slot.is_(True),
            )
        )

    async def insert_if_absent(self, values: Mapping[str, Any]) -> Tuple[PaymentRequest, bool]:
        """Insert a claim unless the (student, course) slot is taken.

        Returns ``(claim, True)`` for a new row, ``(existing, False)`` when the
        unique index rejected the insert. The session is rolled back on
        conflict, so callers must not rely on other pending work in it.
        """
        last_exc: Optional[IntegrityError] = None
        for _ in range(_INSERT_ATTEMPTS):
            claim = PaymentRequest(**values, active_slot=True)
            self.session.add(claim)
            try:
                await self.session.flush()
                return claim, True
            except IntegrityError as e:
                last_exc = e
                await self.session.rollback()
            existing = await self.find_active(values["student_id"], values["course_id"])
            if existing is not None:
                return existing, False
            # The conflicting claim left the active set between insert and lookup
            logger.info(
                "claim insert conflict vanished; retrying",
                extra={"extra": {"student_id": values["student_id"], "course_id": values["course_id"]}},
            )
        if last_exc is None:
            raise RuntimeError("claim insert retried without a conflict")
        raise last_exc

    async def list_by_filter(self, flt: ClaimFilter) -> List[PaymentRequest]:
        stmt = select(PaymentRequest)
        if flt.student_id is not None:
            stmt = stmt.where(PaymentRequest.student_id == flt.student_id)
        if flt.course_id is not None:
            stmt = stmt.where(PaymentRequest.course_id == flt.course_id)
        if flt.statuses:
            stmt = stmt.where(PaymentRequest.status.in_(list(flt.statuses)))
        if flt.needs_enrollment:
            stmt = stmt.where(
                PaymentRequest.status == ClaimStatus.VERIFIED.value,
                PaymentRequest.enrolled_at.is_(None),
            )
        term = (flt.search or "").strip().lower()
        if term:
            stmt = stmt.where(
                or_(
                    func.lower(PaymentRequest.transaction_ref).contains(term, autoescape=True),
                    func.lower(PaymentRequest.sender_account).contains(term, autoescape=True),
                    func.lower(PaymentRequest.student_id).contains(term, autoescape=True),
                    func.lower(PaymentRequest.course_id).contains(term, autoescape=True),
                )
            )
        stmt = stmt.order_by(PaymentRequest.created_at.desc(), PaymentRequest.id.desc())
        if flt.offset:
            stmt = stmt.offset(flt.offset)
        if flt.limit is not None:
            stmt = stmt.limit(flt.limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def update_if_status(
        self,
        request_id: int,
        expected_status: str,
        patch: Mapping[str, Any],
        *,
        not_expired_at: Optional[datetime] = None,
        extra_where: Sequence[Any] = (),
    ) -> bool:
        """Apply ``patch`` only if the row still has ``expected_status``.

        With ``not_expired_at`` the row must also satisfy ``expires_at >= not_expired_at``.
        Returns True when exactly this call performed the transition.
        """
        stmt = update(PaymentRequest).where(
            PaymentRequest.id == request_id,
            PaymentRequest.status == expected_status,
            *extra_where,
        )
        if not_expired_at is not None:
            stmt = stmt.where(PaymentRequest.expires_at >= not_expired_at)
        values: Dict[str, Any] = {"updated_at": utc_now(), **patch}
        res = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return (res.rowcount or 0) == 1

    async def expire_one(self, request_id: int, now: datetime) -> bool:
        return await self.update_if_status(
            request_id,
            ClaimStatus.PENDING.value,
            {"status": ClaimStatus.EXPIRED.value, "active_slot": None},
            extra_where=(PaymentRequest.expires_at < now,),
        )

    async def expire_stale(self, now: datetime) -> int:
        res = await self.session.execute(
            update(PaymentRequest)
            .where(PaymentRequest.status == ClaimStatus.PENDING.value, PaymentRequest.expires_at < now)
            .values(status=ClaimStatus.EXPIRED.value, active_slot=None, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return res.rowcount or 0

    async def count_by_status(self, student_id: Optional[str] = None) -> Dict[str, int]:
        stmt = select(PaymentRequest.status, func.count(PaymentRequest.id)).group_by(PaymentRequest.status)
        if student_id is not None:
            stmt = stmt.where(PaymentRequest.student_id == student_id)
        counts = {s.value: 0 for s in ClaimStatus}
        for status, n in (await self.session.execute(stmt)).all():
            counts[status] = int(n)
        return counts

    async def count_active(self, student_id: str, course_id: str) -> int:
        return int(
            await self.session.scalar(
                select(func.count(PaymentRequest.id)).where(
                    PaymentRequest.student_id == student_id,
                    PaymentRequest.course_id == course_id,
                    PaymentRequest.status.in_(ACTIVE_STATUSES),
                )
            )
            or 0
        )
