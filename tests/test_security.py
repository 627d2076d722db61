from __future__ import annotations

import pytest

from coursepay.bot.middlewares.rate_limit import RateLimitMiddleware
from coursepay.payment.errors import PermissionDenied, Unauthenticated
from coursepay.services.security import (
    ROLE_STAFF,
    ROLE_STUDENT,
    Principal,
    principal_for_telegram,
    require_authenticated,
    require_staff,
)


def test_admin_ids_map_to_staff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEGRAM_ADMIN_IDS", "900, 901,notanid")
    assert principal_for_telegram(900) == Principal(id="900", role=ROLE_STAFF)
    assert principal_for_telegram(901).is_staff
    assert principal_for_telegram(1001) == Principal(id="1001", role=ROLE_STUDENT)
    assert principal_for_telegram(None) is None


def test_require_helpers() -> None:
    with pytest.raises(Unauthenticated):
        require_authenticated(None)
    with pytest.raises(Unauthenticated):
        require_staff(Principal(id=""))
    with pytest.raises(PermissionDenied):
        require_staff(Principal(id="1001"))
    staff = Principal(id="900", role=ROLE_STAFF)
    assert require_staff(staff) is staff


def test_rate_limit_window() -> None:
    limiter = RateLimitMiddleware(max_per_minute=3)
    assert [limiter._allow(7) for _ in range(4)] == [True, True, True, False]
    assert limiter._allow(8) is True
