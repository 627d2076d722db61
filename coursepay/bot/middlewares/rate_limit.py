from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Deque, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

from coursepay.services.security import is_admin_uid


class RateLimitMiddleware(BaseMiddleware):
    """Per-user sliding window limit on messages and button presses; staff are exempt."""

    def __init__(self, max_per_minute: int = 20, notify_text: str | None = None) -> None:
        self.max = max_per_minute
        self.window = 60.0
        self.history: Dict[int, Deque[float]] = defaultdict(deque)
        self.notify_text = notify_text or "Too many requests. Please try again in a minute."

    def _allow(self, uid: int) -> bool:
        now = time.monotonic()
        q = self.history[uid]
        while q and (now - q[0]) > self.window:
            q.popleft()
        if len(q) >= self.max:
            return False
        q.append(now)
        return True

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        if not isinstance(event, (Message, CallbackQuery)) or not event.from_user:
            return await handler(event, data)
        uid = event.from_user.id
        if is_admin_uid(uid) or self._allow(uid):
            return await handler(event, data)
        if isinstance(event, CallbackQuery):
            # Short toast, not an alert popup
            await event.answer(self.notify_text, show_alert=False)
        else:
            await event.answer(self.notify_text)
        return None
