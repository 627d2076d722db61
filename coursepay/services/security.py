from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Set

from coursepay.payment.errors import PermissionDenied, Unauthenticated

ROLE_STUDENT = "student"
ROLE_STAFF = "staff"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as supplied by the identity collaborator (trusted)."""

    id: str
    role: str = ROLE_STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role == ROLE_STAFF


def staff_telegram_ids() -> Set[int]:
    """Telegram ids listed in TELEGRAM_ADMIN_IDS; re-read on every call."""
    raw = os.getenv("TELEGRAM_ADMIN_IDS", "")
    return {int(x.strip()) for x in raw.split(",") if x.strip().isdigit()}


def is_admin_uid(uid: int | None) -> bool:
    return bool(uid and uid in staff_telegram_ids())


def principal_for_telegram(uid: int | None) -> Optional[Principal]:
    """Map a Telegram user id to a principal; ids in TELEGRAM_ADMIN_IDS are staff."""
    if not uid:
        return None
    return Principal(id=str(uid), role=ROLE_STAFF if is_admin_uid(uid) else ROLE_STUDENT)


def require_authenticated(principal: Optional[Principal]) -> Principal:
    if principal is None or not str(principal.id or "").strip():
        raise Unauthenticated("sign in required")
    return principal


def require_staff(principal: Optional[Principal]) -> Principal:
    principal = require_authenticated(principal)
    if not principal.is_staff:
        raise PermissionDenied("staff role required")
    return principal
