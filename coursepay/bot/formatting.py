from __future__ import annotations

from coursepay.db.models import ClaimStatus, PaymentMethod, PaymentRequest
from coursepay.payment.errors import (
    DuplicateClaim,
    EnrollmentFailed,
    InvalidPaymentMethod,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ReconciliationError,
    Unauthenticated,
    ValidationError,
)
from coursepay.utils.money import taka


def status_emoji(st: str) -> str:
    return {
        ClaimStatus.PENDING.value: "🕒",
        ClaimStatus.VERIFIED.value: "✅",
        ClaimStatus.REJECTED.value: "❌",
        ClaimStatus.EXPIRED.value: "⌛",
    }.get((st or "").lower(), "ℹ️")


def method_text(m: PaymentMethod) -> str:
    state = "" if m.is_active else " (inactive)"
    lines = [f"#{m.id} {m.method_type.upper()}{state}: {m.account_number} ({m.account_name})"]
    if m.instructions:
        lines.append(f"   {m.instructions}")
    return "\n".join(lines)


def claim_line(c: PaymentRequest) -> str:
    ts = c.created_at.strftime("%Y-%m-%d %H:%M") if c.created_at else "-"
    return f"{status_emoji(c.status)} #{c.id} • course {c.course_id} • {taka(c.amount)} • {c.status} • {ts}"


def claim_detail(c: PaymentRequest) -> str:
    lines = [
        f"Claim #{c.id} | {c.status}",
        f"Student: {c.student_id} | Course: {c.course_id}",
        f"Amount: {taka(c.amount)} | Method: #{c.payment_method_id}",
        f"Sender: {c.sender_account} | Ref: {c.transaction_ref}",
        f"Created: {c.created_at:%Y-%m-%d %H:%M} | Expires: {c.expires_at:%Y-%m-%d %H:%M} UTC",
    ]
    if c.verified_at:
        lines.append(f"Verified: {c.verified_at:%Y-%m-%d %H:%M} by {c.verified_by}")
    if c.admin_notes:
        lines.append(f"Notes: {c.admin_notes}")
    if c.status == ClaimStatus.VERIFIED.value and c.enrolled_at is None:
        lines.append(f"⚠️ Enrollment pending: {c.enrollment_error or 'not granted yet'}")
    return "\n".join(lines)


def error_text(err: ReconciliationError) -> str:
    if isinstance(err, Unauthenticated):
        return "Please start a chat with the bot first."
    if isinstance(err, PermissionDenied):
        return "You do not have staff access."
    if isinstance(err, ValidationError):
        return f"Invalid input: {err.message}"
    if isinstance(err, InvalidPaymentMethod):
        return "That payment method is not available. Use /methods to see the current accounts."
    if isinstance(err, DuplicateClaim):
        status = f" ({err.existing_status})" if err.existing_status else ""
        return f"You already have claim #{err.existing_id}{status} for this course. Use /claim {err.existing_id} to see it."
    if isinstance(err, NotFound):
        return "Not found."
    if isinstance(err, InvalidTransition):
        return f"Claim #{err.request_id} can no longer be changed: {err.message}"
    if isinstance(err, EnrollmentFailed):
        return (
            f"⚠️ Claim #{err.claim.id} is VERIFIED but enrollment failed ({err.reason}). "
            f"Enroll the student manually or run /enroll_retry {err.claim.id}."
        )
    return err.message
