from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

# Task-local id tying together the log lines of one bot update or scheduler run
_cid: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    return _cid.get("")


@contextmanager
def correlation_scope(prefix: str = "", value: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of the block, restoring the previous one."""
    cid = value or f"{prefix}{uuid.uuid4().hex}"
    token = _cid.set(cid)
    try:
        yield cid
    finally:
        _cid.reset(token)
