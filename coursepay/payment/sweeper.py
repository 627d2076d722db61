from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursepay.db.repository import PaymentRequestRepository
from coursepay.db.session import get_session_maker
from coursepay.services import notifications
from coursepay.services.audit import log_audit
from coursepay.utils.time import as_naive_utc, utc_now

logger = logging.getLogger(__name__)


class ExpirationSweeper:
    """Moves pending claims past their ``expires_at`` to ``expired``.

    Safe to run repeatedly and concurrently with verification: the bulk UPDATE
    only matches rows that are still pending.
    """

    def __init__(
        self,
        sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sessionmaker = sessionmaker or get_session_maker()
        self._clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> int:
        cutoff = as_naive_utc(now) if now is not None else self._clock()
        async with self._sessionmaker() as session:
            count = await PaymentRequestRepository(session).expire_stale(cutoff)
            if count > 0:
                await log_audit(
                    session,
                    actor="system",
                    action="claims_expired",
                    target_type="payment_request",
                    meta={"count": count, "cutoff": cutoff.isoformat()},
                )
            await session.commit()
        if count > 0:
            logger.info("expired stale claims", extra={"extra": {"count": count}})
            await notifications.notify_log(f"Expired {count} pending payment claims past their validity window.")
        return count
