"""Error taxonomy for the claim/verify/enroll workflow.

Every error carries a stable ``code`` so outer surfaces (bot replies, an HTTP
layer) can map them without isinstance chains. Business-rule errors are final
for the call that raised them; only store transport failures (raised by
SQLAlchemy itself) are worth retrying.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from coursepay.db.models import PaymentRequest


class ReconciliationError(Exception):
    code = "reconciliation_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class Unauthenticated(ReconciliationError):
    code = "unauthenticated"


class PermissionDenied(ReconciliationError):
    code = "permission_denied"


class ValidationError(ReconciliationError):
    code = "validation_error"

    def __init__(self, message: str = "", *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidPaymentMethod(ReconciliationError):
    code = "invalid_payment_method"


class DuplicateClaim(ReconciliationError):
    code = "duplicate_claim"

    def __init__(self, existing_id: int, existing_status: Optional[str] = None) -> None:
        super().__init__(f"an active claim #{existing_id} already exists for this course")
        self.existing_id = existing_id
        self.existing_status = existing_status


class NotFound(ReconciliationError):
    code = "not_found"


class InvalidTransition(ReconciliationError):
    code = "invalid_transition"

    def __init__(self, request_id: int, current_status: Optional[str], message: str = "") -> None:
        super().__init__(message or f"claim #{request_id} is {current_status or 'unknown'}")
        self.request_id = request_id
        self.current_status = current_status


class EnrollmentFailed(ReconciliationError):
    """The claim is verified but granting course access failed.

    The claim must not be reverted; staff reconcile it manually or through
    ``VerificationService.retry_enrollment``.
    """

    code = "enrollment_failed"

    def __init__(self, claim: "PaymentRequest", reason: str) -> None:
        super().__init__(f"claim #{claim.id} verified but enrollment failed: {reason}")
        self.claim = claim
        self.reason = reason
