"""Student side of the reconciliation workflow: submitting a payment claim."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursepay.config import settings
from coursepay.db.models import AMOUNT_MAX, ID_MAX_LEN, TEXT_MAX_LEN, ClaimStatus, PaymentMethod, PaymentRequest
from coursepay.db.repository import PaymentRequestRepository
from coursepay.db.session import get_session_maker
from coursepay.payment.errors import DuplicateClaim, InvalidPaymentMethod, ValidationError
from coursepay.services import notifications
from coursepay.services.audit import log_audit
from coursepay.services.security import Principal, require_authenticated
from coursepay.utils.money import parse_amount, taka
from coursepay.utils.text_normalize import normalize_account, normalize_text
from coursepay.utils.time import hours, utc_now

logger = logging.getLogger(__name__)


class ClaimSubmissionService:
    def __init__(
        self,
        sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
        *,
        validity_hours: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sessionmaker = sessionmaker or get_session_maker()
        self.validity_hours = settings.claim_validity_hours if validity_hours is None else validity_hours
        self._clock = clock

    async def submit(
        self,
        principal: Optional[Principal],
        *,
        course_id: Any,
        payment_method_id: Any,
        sender_account: Optional[str],
        transaction_ref: Optional[str],
        amount: Any,
    ) -> PaymentRequest:
        student = require_authenticated(principal)

        try:
            method_id = int(payment_method_id)
        except (TypeError, ValueError):
            raise InvalidPaymentMethod("payment method is required") from None

        course = normalize_text(str(course_id) if course_id is not None else None)
        sender = normalize_account(sender_account)
        ref = normalize_text(transaction_ref)
        value = parse_amount(amount)

        async with self._sessionmaker() as session:
            method = await session.get(PaymentMethod, method_id)
            if method is None or not method.is_active:
                raise InvalidPaymentMethod(f"payment method #{method_id} is not available")
            method_label = f"{method.method_type} {method.account_number}"

            value = _validate(course=course, sender=sender, ref=ref, amount=value)

            now = self._clock()
            repo = PaymentRequestRepository(session)
            claim, created = await repo.insert_if_absent(
                {
                    "student_id": student.id,
                    "course_id": course,
                    "payment_method_id": method_id,
                    "amount": value,
                    "sender_account": sender,
                    "transaction_ref": ref,
                    "status": ClaimStatus.PENDING.value,
                    "created_at": now,
                    "updated_at": now,
                    "expires_at": now + hours(self.validity_hours),
                }
            )
            if not created:
                logger.info(
                    "duplicate claim rejected",
                    extra={"extra": {"student_id": student.id, "course_id": course, "existing_id": claim.id}},
                )
                raise DuplicateClaim(claim.id, claim.status)

            await log_audit(
                session,
                actor="student",
                action="claim_submitted",
                target_type="payment_request",
                target_id=claim.id,
                meta={"student_id": student.id, "course_id": course, "method_id": method_id, "amount": str(value)},
            )
            await session.commit()

        logger.info(
            "claim submitted",
            extra={"extra": {"claim_id": claim.id, "student_id": student.id, "course_id": course}},
        )
        await notifications.notify_log(
            f"New payment claim #{claim.id}: student {student.id}, course {course}, "
            f"{taka(value)} via {method_label}, ref {ref}"
        )
        return claim


def _check_text(value: str, field: str, label: str, max_len: int) -> None:
    if not value:
        raise ValidationError(f"{label} is required", field=field)
    if len(value) > max_len:
        raise ValidationError(f"{label} must be at most {max_len} characters", field=field)


def _validate(*, course: str, sender: str, ref: str, amount: Optional[Decimal]) -> Decimal:
    _check_text(course, "course_id", "course", ID_MAX_LEN)
    _check_text(sender, "sender_account", "sender account", ID_MAX_LEN)
    _check_text(ref, "transaction_ref", "transaction reference", TEXT_MAX_LEN)
    if amount is None:
        raise ValidationError("amount must be a number", field="amount")
    if amount <= 0:
        raise ValidationError("amount must be greater than zero", field="amount")
    if amount > AMOUNT_MAX:
        raise ValidationError(f"amount must not exceed {AMOUNT_MAX}", field="amount")
    return amount
