from __future__ import annotations

import logging
from typing import Optional

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from coursepay.bot.formatting import claim_detail, claim_line, error_text, method_text
from coursepay.config import settings
from coursepay.payment.errors import ReconciliationError
from coursepay.services.security import Principal
from coursepay.services.wiring import get_services
from coursepay.utils.money import taka

logger = logging.getLogger(__name__)

router = Router()

PAY_USAGE = "Usage: /pay <COURSE_ID> <METHOD_ID> <YOUR_ACCOUNT_NUMBER> <TRANSACTION_ID> <AMOUNT>"


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    await message.answer(
        "Welcome! To buy a course:\n"
        "1. /methods to see where to send the payment\n"
        "2. Send the exact course price by mobile money and keep the transaction id\n"
        f"3. {PAY_USAGE}\n"
        "4. /my_claims to follow the review\n"
        f"Claims are reviewed within {settings.claim_validity_hours} hours."
    )


@router.message(Command("methods"))
async def cmd_methods(message: Message) -> None:
    methods = await get_services().methods.list_active_methods()
    if not methods:
        await message.answer("No payment methods are available right now.")
        return
    await message.answer("Send your payment to one of:\n" + "\n".join(method_text(m) for m in methods))


@router.message(Command("pay"))
async def cmd_pay(message: Message, principal: Optional[Principal] = None) -> None:
    parts = (message.text or "").split()
    if len(parts) != 6:
        await message.answer(PAY_USAGE)
        return
    _, course_id, method_id, sender, ref, amount = parts
    try:
        claim = await get_services().claims.submit(
            principal,
            course_id=course_id,
            payment_method_id=method_id,
            sender_account=sender,
            transaction_ref=ref,
            amount=amount,
        )
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer(
        f"Claim #{claim.id} submitted for course {claim.course_id} ({taka(claim.amount)}).\n"
        f"Status: {claim.status}. Staff will review it before {claim.expires_at:%Y-%m-%d %H:%M} UTC."
    )


@router.message(Command("my_claims"))
async def cmd_my_claims(message: Message, principal: Optional[Principal] = None) -> None:
    try:
        claims = await get_services().queries.list_claims(principal, limit=10)
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    if not claims:
        await message.answer("You have not submitted any payment claims.")
        return
    await message.answer("Your latest claims:\n" + "\n".join(claim_line(c) for c in claims))


@router.message(Command("claim"))
async def cmd_claim(message: Message, principal: Optional[Principal] = None) -> None:
    parts = (message.text or "").split()
    if len(parts) != 2 or not parts[1].lstrip("#").isdigit():
        await message.answer("Usage: /claim <CLAIM_ID>")
        return
    try:
        claim = await get_services().queries.get_claim(principal, int(parts[1].lstrip("#")))
    except ReconciliationError as e:
        await message.answer(error_text(e))
        return
    await message.answer(claim_detail(claim))
