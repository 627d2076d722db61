from __future__ import annotations

import logging
from typing import Optional

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from coursepay.bot.formatting import claim_detail, claim_line, error_text, method_text, status_emoji
from coursepay.db.models import ClaimStatus
from coursepay.payment.errors import EnrollmentFailed, ReconciliationError
from coursepay.payment.verification import Decision
from coursepay.services.security import Principal, require_staff
from coursepay.services.wiring import get_services

logger = logging.getLogger(__name__)

router = Router()

PAGE_SIZE_PENDING = 20


def _decision_kb(claim_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="Approve ✅", callback_data=f"claim:approve:{claim_id}"),
                InlineKeyboardButton(text="Reject ❌", callback_data=f"claim:reject:{claim_id}"),
            ]
        ]
    )


def _arg_id(text: Optional[str]) -> Optional[int]:
    parts = (text or "").split(maxsplit=2)
    if len(parts) < 2:
        return None
    raw = parts[1].lstrip("#")
    return int(raw) if raw.isdigit() else None


@router.message(Command("claims_pending"))
async def cmd_claims_pending(message: Message, principal: Optional[Principal] = None) -> None:
    parts = (message.text or "").split(maxsplit=1)
    search = parts[1] if len(parts) == 2 else None
    svc = get_services()
    try:
        require_staff(principal)
        # Settle stale claims first so staff never see an expired one as actionable
        await svc.sweeper.sweep()
        claims = await svc.queries.list_claims(
            principal, status=ClaimStatus.PENDING.value, search=search, limit=PAGE_SIZE_PENDING
        )
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    if not claims:
        await message.answer("No claims waiting for review.")
        return
    for c in reversed(claims):
        await message.answer(claim_detail(c), reply_markup=_decision_kb(c.id))


@router.callback_query(F.data.startswith("claim:"))
async def cb_claim_decision(cb: CallbackQuery, principal: Optional[Principal] = None) -> None:
    try:
        _, action, raw_id = (cb.data or "").split(":")
        claim_id = int(raw_id)
        decision = Decision(action)
    except ValueError:
        await cb.answer("Invalid claim action", show_alert=True)
        return
    try:
        claim = await get_services().verification.verify(principal, claim_id, decision)
    except EnrollmentFailed as e:
        await cb.answer("Verified, but enrollment failed", show_alert=True)
        if cb.message:
            await cb.message.answer(error_text(e))
        return
    except ReconciliationError as e:
        await cb.answer(error_text(e), show_alert=True)
        return
    await cb.answer(f"Claim #{claim.id} {claim.status}")
    if cb.message:
        await cb.message.answer(f"{status_emoji(claim.status)} Claim #{claim.id} is now {claim.status}.")


@router.message(Command("reject"))
async def cmd_reject(message: Message, principal: Optional[Principal] = None) -> None:
    claim_id = _arg_id(message.text)
    parts = (message.text or "").split(maxsplit=2)
    if claim_id is None:
        await message.answer("Usage: /reject <CLAIM_ID> <NOTES>")
        return
    notes = parts[2] if len(parts) == 3 else None
    try:
        claim = await get_services().verification.verify(principal, claim_id, Decision.REJECT, notes)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"{status_emoji(claim.status)} Claim #{claim.id} rejected.")


@router.message(Command("approve"))
async def cmd_approve(message: Message, principal: Optional[Principal] = None) -> None:
    claim_id = _arg_id(message.text)
    parts = (message.text or "").split(maxsplit=2)
    if claim_id is None:
        await message.answer("Usage: /approve <CLAIM_ID> [NOTES]")
        return
    notes = parts[2] if len(parts) == 3 else None
    try:
        claim = await get_services().verification.verify(principal, claim_id, Decision.APPROVE, notes)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"{status_emoji(claim.status)} Claim #{claim.id} verified and student enrolled.")


@router.message(Command("claims_stats"))
async def cmd_claims_stats(message: Message, principal: Optional[Principal] = None) -> None:
    try:
        stats = await get_services().queries.claim_stats(principal)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    lines = [f"{status_emoji(k)} {k}: {v}" for k, v in stats.items()]
    await message.answer("Claims by status:\n" + "\n".join(lines))


@router.message(Command("enroll_failures"))
async def cmd_enroll_failures(message: Message, principal: Optional[Principal] = None) -> None:
    try:
        claims = await get_services().verification.list_enrollment_failures(principal)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    if not claims:
        await message.answer("Every verified claim has been enrolled.")
        return
    await message.answer(
        "Verified claims waiting for enrollment:\n"
        + "\n".join(f"{claim_line(c)} • {c.enrollment_error or '-'}" for c in claims)
    )


@router.message(Command("enroll_retry"))
async def cmd_enroll_retry(message: Message, principal: Optional[Principal] = None) -> None:
    claim_id = _arg_id(message.text)
    if claim_id is None:
        await message.answer("Usage: /enroll_retry <CLAIM_ID>")
        return
    try:
        claim = await get_services().verification.retry_enrollment(principal, claim_id)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"✅ Student {claim.student_id} enrolled in course {claim.course_id} (claim #{claim.id}).")


@router.message(Command("method_add"))
async def cmd_method_add(message: Message, principal: Optional[Principal] = None) -> None:
    parts = (message.text or "").split(maxsplit=3)
    if len(parts) != 4:
        await message.answer("Usage: /method_add <bkash|nagad> <ACCOUNT_NUMBER> <ACCOUNT_NAME>")
        return
    _, method_type, account_number, account_name = parts
    try:
        method = await get_services().methods.create(
            principal,
            method_type=method_type,
            account_number=account_number,
            account_name=account_name,
        )
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer("Payment method added:\n" + method_text(method))


@router.message(Command("method_toggle"))
async def cmd_method_toggle(message: Message, principal: Optional[Principal] = None) -> None:
    method_id = _arg_id(message.text)
    if method_id is None:
        await message.answer("Usage: /method_toggle <METHOD_ID>")
        return
    svc = get_services()
    try:
        current = await svc.methods.get_method(method_id)
        method = await svc.methods.update(principal, method_id, is_active=not current.is_active)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer(method_text(method))


@router.message(Command("methods_all"))
async def cmd_methods_all(message: Message, principal: Optional[Principal] = None) -> None:
    try:
        methods = await get_services().methods.list_methods(principal)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer("\n".join(method_text(m) for m in methods) or "No payment methods yet.")


@router.message(Command("sweep"))
async def cmd_sweep(message: Message, principal: Optional[Principal] = None) -> None:
    svc = get_services()
    try:
        require_staff(principal)
        count = await svc.sweeper.sweep()
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"Expired {count} stale claims.")
