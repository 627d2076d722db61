from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

from coursepay.services.security import principal_for_telegram


class IdentityMiddleware(BaseMiddleware):
    """Attach the caller's ``Principal`` (or None) to handler data as ``principal``."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        uid = None
        if isinstance(event, (Message, CallbackQuery)) and event.from_user:
            uid = event.from_user.id
        data["principal"] = principal_for_telegram(uid)
        return await handler(event, data)
