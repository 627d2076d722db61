"""Staff side of the reconciliation workflow.

A claim leaves ``pending`` through a conditional UPDATE that pins the status
(and, for approvals, the expiry). Whichever caller's UPDATE matches the row
owns the transition; everybody else gets ``InvalidTransition``. Enrollment is
triggered only by the owner, after the verification is committed, so it runs
at most once per approval. A failed enrollment leaves the claim verified and
is surfaced as ``EnrollmentFailed`` for manual reconciliation.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursepay.db.models import ClaimStatus, PaymentRequest
from coursepay.db.repository import ClaimFilter, PaymentRequestRepository
from coursepay.db.session import get_session_maker
from coursepay.payment.enrollment import EnrollmentTrigger
from coursepay.payment.errors import EnrollmentFailed, InvalidTransition, NotFound, ValidationError
from coursepay.services import notifications
from coursepay.services.audit import log_audit
from coursepay.services.security import Principal, require_staff
from coursepay.utils.text_normalize import normalize_text
from coursepay.utils.time import utc_now

logger = logging.getLogger(__name__)


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


def _parse_decision(raw: Any) -> Decision:
    if isinstance(raw, Decision):
        return raw
    value = normalize_text(str(raw) if raw is not None else None).lower()
    # Accept the target status as an alias, the way staff tooling tends to send it
    aliases = {"verified": Decision.APPROVE, "rejected": Decision.REJECT}
    try:
        return aliases.get(value) or Decision(value)
    except ValueError:
        raise ValidationError(f"unknown decision: {raw!r}", field="decision") from None


class VerificationService:
    def __init__(
        self,
        enrollment: EnrollmentTrigger,
        sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._enrollment = enrollment
        self._sessionmaker = sessionmaker or get_session_maker()
        self._clock = clock

    async def verify(
        self,
        principal: Optional[Principal],
        request_id: int,
        decision: Any,
        notes: Optional[str] = None,
    ) -> PaymentRequest:
        staff = require_staff(principal)
        choice = _parse_decision(decision)
        notes_clean = normalize_text(notes) or None
        now = self._clock()

        async with self._sessionmaker() as session:
            repo = PaymentRequestRepository(session)
            claim = await repo.get(request_id)
            if claim is None:
                raise NotFound(f"payment request #{request_id} not found")
            if claim.status != ClaimStatus.PENDING.value:
                raise InvalidTransition(request_id, claim.status)
            if claim.is_stale(now):
                # Expired but not swept yet: settle it the same way the sweeper would
                if await repo.expire_one(request_id, now):
                    await log_audit(
                        session,
                        actor="system",
                        action="claim_expired",
                        target_type="payment_request",
                        target_id=request_id,
                        meta={"via": "verify", "by": staff.id},
                    )
                    await session.commit()
                current = await repo.get(request_id, refresh=True)
                raise InvalidTransition(
                    request_id,
                    current.status if current else ClaimStatus.EXPIRED.value,
                    f"claim #{request_id} expired at {claim.expires_at:%Y-%m-%d %H:%M} UTC",
                )

            if choice is Decision.APPROVE:
                patch = {
                    "status": ClaimStatus.VERIFIED.value,
                    "verified_at": now,
                    "verified_by": staff.id,
                    "decided_at": now,
                    "decided_by": staff.id,
                    "admin_notes": notes_clean,
                }
                action = "claim_verified"
            else:
                patch = {
                    "status": ClaimStatus.REJECTED.value,
                    "decided_at": now,
                    "decided_by": staff.id,
                    "admin_notes": notes_clean,
                    "active_slot": None,
                }
                action = "claim_rejected"

            won = await repo.update_if_status(
                request_id, ClaimStatus.PENDING.value, patch, not_expired_at=now
            )
            if not won:
                await session.rollback()
                current = await repo.get(request_id, refresh=True)
                logger.info(
                    "verify lost race",
                    extra={"extra": {"claim_id": request_id, "status": current.status if current else None}},
                )
                raise InvalidTransition(request_id, current.status if current else None)

            await log_audit(
                session,
                actor="staff",
                action=action,
                target_type="payment_request",
                target_id=request_id,
                meta={"by": staff.id, "notes": notes_clean},
            )
            await session.commit()
            claim = await repo.get(request_id, refresh=True)
            if claim is None:
                raise NotFound(f"payment request #{request_id} not found")

        logger.info(
            "claim decided",
            extra={"extra": {"claim_id": claim.id, "status": claim.status, "by": staff.id}},
        )
        if choice is Decision.REJECT:
            suffix = f" Note: {notes_clean}" if notes_clean else ""
            await notifications.notify_student(
                claim.student_id,
                f"Your payment claim #{claim.id} for course {claim.course_id} was rejected.{suffix} "
                "You can submit a new claim.",
            )
            return claim

        return await self._grant(claim, actor_id=staff.id)

    async def retry_enrollment(self, principal: Optional[Principal], request_id: int) -> PaymentRequest:
        staff = require_staff(principal)
        async with self._sessionmaker() as session:
            claim = await PaymentRequestRepository(session).get(request_id)
        if claim is None:
            raise NotFound(f"payment request #{request_id} not found")
        if not claim.needs_enrollment:
            raise InvalidTransition(
                request_id,
                claim.status,
                f"claim #{request_id} is {claim.status}"
                + (" and already enrolled" if claim.enrolled_at else ""),
            )
        logger.info("retrying enrollment", extra={"extra": {"claim_id": request_id, "by": staff.id}})
        return await self._grant(claim, actor_id=staff.id)

    async def list_enrollment_failures(self, principal: Optional[Principal]) -> List[PaymentRequest]:
        require_staff(principal)
        async with self._sessionmaker() as session:
            return await PaymentRequestRepository(session).list_by_filter(ClaimFilter(needs_enrollment=True))

    async def _grant(self, claim: PaymentRequest, *, actor_id: str) -> PaymentRequest:
        try:
            await self._enrollment.grant_access(claim.student_id, claim.course_id)
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            logger.exception(
                "enrollment failed after verification",
                extra={"extra": {"claim_id": claim.id, "student_id": claim.student_id, "course_id": claim.course_id}},
            )
            async with self._sessionmaker() as session:
                repo = PaymentRequestRepository(session)
                await repo.update_if_status(
                    claim.id, ClaimStatus.VERIFIED.value, {"enrollment_error": reason[:1000]}
                )
                await log_audit(
                    session,
                    actor="system",
                    action="enrollment_failed",
                    target_type="payment_request",
                    target_id=claim.id,
                    meta={"by": actor_id, "reason": reason[:500]},
                )
                await session.commit()
                claim = await repo.get(claim.id, refresh=True) or claim
            await notifications.notify_log(
                f"Claim #{claim.id} verified but enrollment FAILED for student {claim.student_id}, "
                f"course {claim.course_id}: {reason}. Manual follow-up required."
            )
            raise EnrollmentFailed(claim, reason) from e

        now = self._clock()
        async with self._sessionmaker() as session:
            repo = PaymentRequestRepository(session)
            await repo.update_if_status(
                claim.id,
                ClaimStatus.VERIFIED.value,
                {"enrolled_at": now, "enrollment_error": None},
            )
            await log_audit(
                session,
                actor="system",
                action="enrollment_granted",
                target_type="payment_request",
                target_id=claim.id,
                meta={"by": actor_id},
            )
            await session.commit()
            claim = await repo.get(claim.id, refresh=True) or claim
        await notifications.notify_student(
            claim.student_id,
            f"Payment claim #{claim.id} verified. You now have access to course {claim.course_id}.",
        )
        return claim
