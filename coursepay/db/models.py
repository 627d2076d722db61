from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coursepay.utils.time import utc_now

from .base import Base


class MethodType(str, enum.Enum):
    BKASH = "bkash"
    NAGAD = "nagad"


class ClaimStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    EXPIRED = "expired"


# Statuses that occupy the (student, course) slot
ACTIVE_STATUSES = (ClaimStatus.PENDING.value, ClaimStatus.VERIFIED.value)

# Column sizes shared with input validation
ID_MAX_LEN = 64
TEXT_MAX_LEN = 191
# Numeric(12, 2)
AMOUNT_MAX = Decimal("9999999999.99")


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    method_type: Mapped[str] = mapped_column(String(32), index=True)
    account_number: Mapped[str] = mapped_column(String(ID_MAX_LEN))
    account_name: Mapped[str] = mapped_column(String(TEXT_MAX_LEN))
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class PaymentRequest(Base):
    __tablename__ = "payment_requests"
    __table_args__ = (
        # One pending/verified claim per (student, course); NULL slots never collide
        UniqueConstraint("student_id", "course_id", "active_slot", name="uq_payment_requests_active_slot"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(ID_MAX_LEN), index=True)
    course_id: Mapped[str] = mapped_column(String(ID_MAX_LEN), index=True)
    payment_method_id: Mapped[int] = mapped_column(ForeignKey("payment_methods.id"))

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    sender_account: Mapped[str] = mapped_column(String(ID_MAX_LEN))
    transaction_ref: Mapped[str] = mapped_column(String(TEXT_MAX_LEN), index=True)

    status: Mapped[str] = mapped_column(String(16), index=True, default=ClaimStatus.PENDING.value)
    # True while pending/verified, NULL once rejected/expired
    active_slot: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    verified_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    decided_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    enrolled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    enrollment_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def is_stale(self, now: datetime) -> bool:
        return self.status == ClaimStatus.PENDING.value and self.expires_at < now

    @property
    def needs_enrollment(self) -> bool:
        return self.status == ClaimStatus.VERIFIED.value and self.enrolled_at is None


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    actor: Mapped[str] = mapped_column(String(32))  # staff|student|system
    action: Mapped[str] = mapped_column(String(64))
    target_type: Mapped[str] = mapped_column(String(64))
    target_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meta: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
