from __future__ import annotations

import json

import pytest
from sqlalchemy import select

from coursepay.db.models import AuditLog, MethodType
from coursepay.payment.errors import NotFound, PermissionDenied, Unauthenticated, ValidationError
from conftest import STAFF, STUDENT, submit


@pytest.mark.asyncio
async def test_create_method_normalizes_account_and_audits(services, sessionmaker):
    m = await services.methods.create(
        STAFF,
        method_type="  Nagad ",
        account_number="০১৭১১-২২২ ৩৩৩",
        account_name="Course Academy",
    )
    assert m.id is not None
    assert m.method_type == MethodType.NAGAD.value
    assert m.account_number == "01711222333"
    assert m.is_active is True
    assert m.created_by == STAFF.id

    async with sessionmaker() as session:
        entry = await session.scalar(select(AuditLog).where(AuditLog.action == "payment_method_created"))
    assert entry is not None
    assert entry.target_id == m.id
    assert json.loads(entry.meta)["type"] == "nagad"


@pytest.mark.asyncio
async def test_create_requires_staff(services):
    with pytest.raises(PermissionDenied):
        await services.methods.create(STUDENT, method_type="bkash", account_number="017", account_name="x")
    with pytest.raises(Unauthenticated):
        await services.methods.create(None, method_type="bkash", account_number="017", account_name="x")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"method_type": "", "account_number": "01711000000", "account_name": "A"},
        {"method_type": "paypal", "account_number": "01711000000", "account_name": "A"},
        {"method_type": "bkash", "account_number": "   ", "account_name": "A"},
        {"method_type": "bkash", "account_number": None, "account_name": "A"},
        {"method_type": "bkash", "account_number": "01711000000", "account_name": ""},
    ],
)
async def test_create_validation(services, fields):
    with pytest.raises(ValidationError):
        await services.methods.create(STAFF, **fields)


@pytest.mark.asyncio
async def test_list_active_methods_hides_inactive(services, method):
    other = await services.methods.create(
        STAFF, method_type=MethodType.NAGAD, account_number="01911000000", account_name="Academy Nagad"
    )
    await services.methods.update(STAFF, other.id, is_active=False)

    active = await services.methods.list_active_methods()
    assert [m.id for m in active] == [method.id]

    everything = await services.methods.list_methods(STAFF)
    assert {m.id for m in everything} == {method.id, other.id}
    with pytest.raises(PermissionDenied):
        await services.methods.list_methods(STUDENT)


@pytest.mark.asyncio
async def test_update_patch_and_errors(services, method):
    updated = await services.methods.update(STAFF, method.id, account_name="Renamed", instructions="")
    assert updated.account_name == "Renamed"
    assert updated.instructions is None
    assert updated.account_number == method.account_number

    with pytest.raises(PermissionDenied):
        await services.methods.update(STUDENT, method.id, is_active=False)
    with pytest.raises(ValidationError):
        await services.methods.update(STAFF, method.id, account_number="")
    with pytest.raises(ValidationError):
        await services.methods.update(STAFF, method.id, created_by="someone")
    with pytest.raises(NotFound):
        await services.methods.update(STAFF, 9999, is_active=False)
    with pytest.raises(NotFound):
        await services.methods.get_method(9999)


@pytest.mark.asyncio
async def test_deactivation_does_not_touch_existing_claims(services, method):
    claim = await submit(services, method_id=method.id)
    await services.methods.update(STAFF, method.id, is_active=False)

    still = await services.queries.get_claim(STAFF, claim.id)
    assert still.status == "pending"
    assert still.payment_method_id == method.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields,field",
    [
        ({"account_number": "0" * 65, "account_name": "A"}, "account_number"),
        ({"account_number": "01711000000", "account_name": "A" * 192}, "account_name"),
    ],
)
async def test_create_rejects_oversized_fields(services, fields, field):
    with pytest.raises(ValidationError) as exc:
        await services.methods.create(STAFF, method_type="bkash", **fields)
    assert exc.value.field == field


@pytest.mark.asyncio
async def test_update_rejects_oversized_name(services, method):
    with pytest.raises(ValidationError) as exc:
        await services.methods.update(STAFF, method.id, account_name="N" * 192)
    assert exc.value.field == "account_name"
