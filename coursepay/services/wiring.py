from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursepay.db.session import get_session_maker
from coursepay.payment.claims import ClaimSubmissionService
from coursepay.payment.enrollment import EnrollmentTrigger, get_enrollment_trigger
from coursepay.payment.methods import PaymentMethodRegistry
from coursepay.payment.queries import ClaimQueries
from coursepay.payment.sweeper import ExpirationSweeper
from coursepay.payment.verification import VerificationService


@dataclass
class Services:
    methods: PaymentMethodRegistry
    claims: ClaimSubmissionService
    verification: VerificationService
    sweeper: ExpirationSweeper
    queries: ClaimQueries


def build_services(
    sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
    enrollment: Optional[EnrollmentTrigger] = None,
) -> Services:
    sm = sessionmaker or get_session_maker()
    return Services(
        methods=PaymentMethodRegistry(sm),
        claims=ClaimSubmissionService(sm),
        verification=VerificationService(enrollment or get_enrollment_trigger(), sm),
        sweeper=ExpirationSweeper(sm),
        queries=ClaimQueries(sm),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]) -> None:
    """Swap the process-wide services (tests, alternative wiring)."""
    global _services
    _services = services
