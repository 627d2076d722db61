from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.db.models import AuditLog
from coursepay.utils.time import utc_now


async def log_audit(
    session: AsyncSession,
    *,
    actor: str,
    action: str,
    target_type: str,
    target_id: Optional[int] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> None:
    entry = AuditLog(
        actor=actor,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta=json.dumps(dict(meta), ensure_ascii=False, default=str) if meta else None,
        created_at=utc_now(),
    )
    session.add(entry)
    await session.flush()
