from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import List, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from coursepay.db.base import Base
from coursepay.db import models  # noqa: F401
from coursepay.db.session import engine_kwargs
from coursepay.payment.claims import ClaimSubmissionService
from coursepay.payment.enrollment import EnrollmentError
from coursepay.payment.methods import PaymentMethodRegistry
from coursepay.payment.queries import ClaimQueries
from coursepay.payment.sweeper import ExpirationSweeper
from coursepay.payment.verification import VerificationService
from coursepay.services import notifications
from coursepay.services.security import ROLE_STAFF, Principal
from coursepay.services.wiring import Services, set_services

STAFF = Principal(id="900", role=ROLE_STAFF)
STUDENT = Principal(id="1001")
OTHER_STUDENT = Principal(id="1002")


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeEnrollment:
    def __init__(self, *, fail: bool = False, delay: float = 0.0) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.fail = fail
        self.delay = delay

    async def grant_access(self, student_id: str, course_id: str) -> None:
        self.calls.append((student_id, course_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise EnrollmentError("course service returned 503")


@pytest.fixture(autouse=True)
def _no_telegram(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("LOG_CHAT_ID", raising=False)
    monkeypatch.setattr(notifications, "_bot_singleton", None)


@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'coursepay-test.db'}"
    engine = create_async_engine(url, **engine_kwargs(url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 1, 9, 0, 0))


@pytest.fixture
def enrollment() -> FakeEnrollment:
    return FakeEnrollment()


@pytest.fixture
def services(sessionmaker, clock, enrollment) -> Services:
    svc = Services(
        methods=PaymentMethodRegistry(sessionmaker),
        claims=ClaimSubmissionService(sessionmaker, validity_hours=48, clock=clock),
        verification=VerificationService(enrollment, sessionmaker, clock=clock),
        sweeper=ExpirationSweeper(sessionmaker, clock=clock),
        queries=ClaimQueries(sessionmaker),
    )
    set_services(svc)
    yield svc
    set_services(None)


@pytest_asyncio.fixture
async def method(services: Services):
    return await services.methods.create(
        STAFF,
        method_type="bkash",
        account_number="01711000000",
        account_name="Course Academy",
        instructions="Use Send Money, not Cash Out",
    )


async def submit(services: Services, principal: Principal = STUDENT, *, course_id: str = "C1", method_id: int, **overrides):
    fields = {
        "course_id": course_id,
        "payment_method_id": method_id,
        "sender_account": "01899000000",
        "transaction_ref": "8N7A6B5C4D",
        "amount": 500,
    }
    fields.update(overrides)
    return await services.claims.submit(principal, **fields)
