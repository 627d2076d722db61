from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Optional

from aiogram import Bot

from coursepay.services.security import staff_telegram_ids

logger = logging.getLogger(__name__)

# Notices are best effort: a Telegram outage must never fail a claim transition.
_bot_singleton: Optional[Bot] = None
_bot_lock = asyncio.Lock()


async def _get_bot() -> Optional[Bot]:
    global _bot_singleton
    if _bot_singleton is None:
        async with _bot_lock:
            token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
            if _bot_singleton is None and token:
                _bot_singleton = Bot(token=token)
    return _bot_singleton


async def _send(chat_id: int, text: str) -> bool:
    bot = await _get_bot()
    if bot is None:
        logger.debug("notifications disabled, no TELEGRAM_BOT_TOKEN", extra={"extra": {"chat_id": chat_id}})
        return False
    try:
        await bot.send_message(chat_id=chat_id, text=text, disable_web_page_preview=True)
    except Exception as e:
        logger.warning("telegram notice failed", extra={"extra": {"chat_id": chat_id, "err": str(e)}})
        return False
    return True


async def notify_user(telegram_id: int, text: str) -> bool:
    return await _send(telegram_id, text)


async def notify_student(student_id: str, text: str) -> bool:
    """Tell a student about a claim status change.

    Student ids coming from the bot surface are Telegram ids; any other id
    scheme has no delivery channel here and is skipped.
    """
    sid = str(student_id or "").strip()
    if not sid.isdigit():
        return False
    return await notify_user(int(sid), text)


def _log_chat_targets() -> List[int]:
    raw = os.getenv("LOG_CHAT_ID", "").strip()
    if not raw:
        return []
    try:
        return [int(raw)]
    except ValueError:
        logger.warning("invalid LOG_CHAT_ID", extra={"extra": {"value": raw}})
        return []


async def notify_log(text: str) -> bool:
    """Post a staff notice to LOG_CHAT_ID.

    Without a log chat, falls back to direct messages to every staff id so
    enrollment failures still reach someone. Returns True if any copy was sent.
    """
    targets = _log_chat_targets() or sorted(staff_telegram_ids())
    sent = False
    for chat_id in targets:
        sent = await _send(chat_id, text) or sent
    return sent


async def aclose_bot() -> None:
    global _bot_singleton
    if _bot_singleton is not None:
        try:
            await _bot_singleton.session.close()
        finally:
            _bot_singleton = None
