from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from aiojobs import Scheduler

from coursepay.config import settings
from coursepay.services.notifications import notify_log
from coursepay.services.security import Principal, ROLE_STAFF
from coursepay.services.wiring import Services, get_services
from coursepay.utils.correlation import correlation_scope

logger = logging.getLogger(__name__)

_SYSTEM = Principal(id="system", role=ROLE_STAFF)


async def job_sweep_expired(services: Optional[Services] = None) -> int:
    """Expire pending claims older than the validity window."""
    svc = services or get_services()
    count = await svc.sweeper.sweep()
    logger.debug("job_sweep_expired done", extra={"extra": {"expired": count}})
    return count


async def job_report_enrollment_failures(services: Optional[Services] = None) -> int:
    """Remind staff about verified claims whose enrollment still has to be reconciled."""
    svc = services or get_services()
    claims = await svc.verification.list_enrollment_failures(_SYSTEM)
    if claims:
        ids = ", ".join(f"#{c.id}" for c in claims[:20])
        more = f" (+{len(claims) - 20} more)" if len(claims) > 20 else ""
        await notify_log(f"{len(claims)} verified claims still need manual enrollment: {ids}{more}")
    return len(claims)


async def run_scheduler() -> None:
    sched = Scheduler()

    async def periodic(coro: Callable[[], Awaitable[object]], interval: float) -> None:
        while True:
            try:
                with correlation_scope("job-"):
                    await coro()
            except Exception as e:
                logger.exception("periodic job error: %s", e)
            await asyncio.sleep(interval)

    await sched.spawn(periodic(job_sweep_expired, settings.sweep_interval_seconds))
    await sched.spawn(periodic(job_report_enrollment_failures, 6 * 60 * 60))  # every 6h

    logger.info(
        "scheduler started",
        extra={"extra": {"sweep_interval_seconds": settings.sweep_interval_seconds}},
    )
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await sched.close()
