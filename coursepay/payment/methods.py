"""Destination accounts staff publish for receiving mobile-money transfers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursepay.db.models import ID_MAX_LEN, TEXT_MAX_LEN, MethodType, PaymentMethod
from coursepay.db.session import get_session_maker
from coursepay.payment.errors import NotFound, ValidationError
from coursepay.services.audit import log_audit
from coursepay.services.security import Principal, require_staff
from coursepay.utils.text_normalize import normalize_account, normalize_text

logger = logging.getLogger(__name__)

_PATCHABLE = {"method_type", "account_number", "account_name", "instructions", "is_active"}


def _clean_type(raw: Any) -> str:
    value = normalize_text(raw.value if isinstance(raw, MethodType) else raw).lower()
    if not value:
        raise ValidationError("payment method type is required", field="method_type")
    try:
        return MethodType(value).value
    except ValueError:
        raise ValidationError(f"unknown payment method type: {value}", field="method_type") from None


def _clean_required(raw: Any, field: str, *, account: bool = False) -> str:
    value = normalize_account(raw) if account else normalize_text(raw)
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    max_len = ID_MAX_LEN if account else TEXT_MAX_LEN
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", field=field)
    return value


class PaymentMethodRegistry:
    def __init__(self, sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._sessionmaker = sessionmaker or get_session_maker()

    async def list_active_methods(self) -> List[PaymentMethod]:
        async with self._sessionmaker() as session:
            rows = await session.execute(
                select(PaymentMethod).where(PaymentMethod.is_active.is_(True)).order_by(PaymentMethod.id)
            )
            return list(rows.scalars().all())

    async def list_methods(self, principal: Optional[Principal]) -> List[PaymentMethod]:
        require_staff(principal)
        async with self._sessionmaker() as session:
            rows = await session.execute(select(PaymentMethod).order_by(PaymentMethod.id))
            return list(rows.scalars().all())

    async def get_method(self, method_id: int) -> PaymentMethod:
        async with self._sessionmaker() as session:
            method = await session.get(PaymentMethod, method_id)
        if method is None:
            raise NotFound(f"payment method #{method_id} not found")
        return method

    async def create(
        self,
        principal: Optional[Principal],
        *,
        method_type: Any,
        account_number: Optional[str],
        account_name: Optional[str],
        instructions: Optional[str] = None,
        is_active: bool = True,
    ) -> PaymentMethod:
        staff = require_staff(principal)
        method = PaymentMethod(
            method_type=_clean_type(method_type),
            account_number=_clean_required(account_number, "account_number", account=True),
            account_name=_clean_required(account_name, "account_name"),
            instructions=normalize_text(instructions) or None,
            is_active=bool(is_active),
            created_by=staff.id,
        )
        async with self._sessionmaker() as session:
            session.add(method)
            await session.flush()
            await log_audit(
                session,
                actor="staff",
                action="payment_method_created",
                target_type="payment_method",
                target_id=method.id,
                meta={"by": staff.id, "type": method.method_type, "active": method.is_active},
            )
            await session.commit()
        logger.info(
            "payment method created",
            extra={"extra": {"method_id": method.id, "type": method.method_type, "by": staff.id}},
        )
        return method

    async def update(self, principal: Optional[Principal], method_id: int, **patch: Any) -> PaymentMethod:
        staff = require_staff(principal)
        unknown = set(patch) - _PATCHABLE
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")
        clean: Dict[str, Any] = {}
        if "method_type" in patch:
            clean["method_type"] = _clean_type(patch["method_type"])
        if "account_number" in patch:
            clean["account_number"] = _clean_required(patch["account_number"], "account_number", account=True)
        if "account_name" in patch:
            clean["account_name"] = _clean_required(patch["account_name"], "account_name")
        if "instructions" in patch:
            clean["instructions"] = normalize_text(patch["instructions"]) or None
        if "is_active" in patch:
            clean["is_active"] = bool(patch["is_active"])

        async with self._sessionmaker() as session:
            method = await session.get(PaymentMethod, method_id)
            if method is None:
                raise NotFound(f"payment method #{method_id} not found")
            for key, value in clean.items():
                setattr(method, key, value)
            await session.flush()
            # Claims already submitted against this method are left untouched
            await log_audit(
                session,
                actor="staff",
                action="payment_method_updated",
                target_type="payment_method",
                target_id=method.id,
                meta={"by": staff.id, "fields": sorted(clean)},
            )
            await session.commit()
        logger.info(
            "payment method updated",
            extra={"extra": {"method_id": method_id, "fields": sorted(clean), "by": staff.id}},
        )
        return method
