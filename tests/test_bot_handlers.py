from __future__ import annotations

import pytest

from coursepay.bot.handlers.staff import cb_claim_decision, cmd_claims_pending, cmd_claims_stats, cmd_reject
from coursepay.bot.handlers.student import PAY_USAGE, cmd_methods, cmd_my_claims, cmd_pay
from conftest import STAFF, STUDENT, submit


class FakeMessage:
    def __init__(self, text: str = ""):
        self.text = text
        self.sent = []

    @property
    def last_text(self):
        return self.sent[-1][0] if self.sent else None

    async def answer(self, text, reply_markup=None, **kwargs):
        self.sent.append((text, reply_markup))


class FakeCb:
    def __init__(self, data: str):
        self.data = data
        self.message = FakeMessage()
        self.answers = []

    async def answer(self, text=None, show_alert=False, **kwargs):
        self.answers.append((text, show_alert))


@pytest.mark.asyncio
async def test_methods_lists_active_accounts(services, method):
    msg = FakeMessage("/methods")
    await cmd_methods(msg)
    assert "01711000000" in msg.last_text
    assert "Send Money" in msg.last_text


@pytest.mark.asyncio
async def test_pay_submits_and_reports_duplicate(services, method):
    msg = FakeMessage(f"/pay C1 {method.id} 01899000000 8N7A6B5C4D 500")
    await cmd_pay(msg, principal=STUDENT)
    assert msg.last_text.startswith("Claim #")
    assert "pending" in msg.last_text

    again = FakeMessage(f"/pay C1 {method.id} 01899000000 OTHERREF 500")
    await cmd_pay(again, principal=STUDENT)
    assert "already have claim" in again.last_text


@pytest.mark.asyncio
async def test_pay_usage_and_errors(services, method):
    msg = FakeMessage("/pay C1")
    await cmd_pay(msg, principal=STUDENT)
    assert msg.last_text == PAY_USAGE

    bad = FakeMessage(f"/pay C1 {method.id} 01899000000 REF -3")
    await cmd_pay(bad, principal=STUDENT)
    assert bad.last_text.startswith("Invalid input")

    anon = FakeMessage(f"/pay C1 {method.id} 01899000000 REF 500")
    await cmd_pay(anon, principal=None)
    assert "start a chat" in anon.last_text


@pytest.mark.asyncio
async def test_my_claims_lists_own_claims(services, method):
    claim = await submit(services, method_id=method.id)
    msg = FakeMessage("/my_claims")
    await cmd_my_claims(msg, principal=STUDENT)
    assert f"#{claim.id}" in msg.last_text


@pytest.mark.asyncio
async def test_claims_pending_renders_decision_buttons(services, method):
    claim = await submit(services, method_id=method.id)
    msg = FakeMessage("/claims_pending")
    await cmd_claims_pending(msg, principal=STAFF)

    text, markup = msg.sent[-1]
    assert f"Claim #{claim.id}" in text
    buttons = [b for row in markup.inline_keyboard for b in row]
    assert [b.callback_data for b in buttons] == [f"claim:approve:{claim.id}", f"claim:reject:{claim.id}"]


@pytest.mark.asyncio
async def test_staff_commands_denied_for_students(services, method):
    msg = FakeMessage("/claims_pending")
    await cmd_claims_pending(msg, principal=STUDENT)
    assert msg.last_text == "You do not have staff access."

    stats = FakeMessage("/claims_stats")
    await cmd_claims_stats(stats, principal=STUDENT)
    assert stats.last_text == "You do not have staff access."


@pytest.mark.asyncio
async def test_approve_button_verifies_and_enrolls(services, method, enrollment):
    claim = await submit(services, method_id=method.id)
    cb = FakeCb(f"claim:approve:{claim.id}")
    await cb_claim_decision(cb, principal=STAFF)

    assert cb.answers[-1] == (f"Claim #{claim.id} verified", False)
    assert "verified" in cb.message.last_text
    assert enrollment.calls == [(STUDENT.id, "C1")]

    # Second tap on the same button loses
    again = FakeCb(f"claim:approve:{claim.id}")
    await cb_claim_decision(again, principal=STAFF)
    assert again.answers[-1][1] is True
    assert "can no longer be changed" in again.answers[-1][0]
    assert len(enrollment.calls) == 1


@pytest.mark.asyncio
async def test_malformed_callback_is_rejected(services):
    cb = FakeCb("claim:approve:abc")
    await cb_claim_decision(cb, principal=STAFF)
    assert cb.answers == [("Invalid claim action", True)]


@pytest.mark.asyncio
async def test_reject_command_with_notes(services, method):
    claim = await submit(services, method_id=method.id)
    msg = FakeMessage(f"/reject {claim.id} transaction id not found")
    await cmd_reject(msg, principal=STAFF)
    assert "rejected" in msg.last_text

    stored = await services.queries.get_claim(STAFF, claim.id)
    assert stored.admin_notes == "transaction id not found"
