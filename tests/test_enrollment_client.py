from __future__ import annotations

import json

import httpx
import pytest

from coursepay.payment.enrollment import EnrollmentError, HttpEnrollmentTrigger


def _trigger(handler, **kwargs) -> HttpEnrollmentTrigger:
    return HttpEnrollmentTrigger(
        "https://courses.example.com/", "s3cret", transport=httpx.MockTransport(handler), **kwargs
    )


@pytest.mark.asyncio
async def test_grant_access_posts_enrollment() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"ok": True})

    trigger = _trigger(handler)
    await trigger.grant_access("1001", "C1")
    await trigger.aclose()

    assert len(seen) == 1
    req = seen[0]
    assert req.method == "POST"
    assert str(req.url) == "https://courses.example.com/api/enrollments"
    assert req.headers["Authorization"] == "Bearer s3cret"
    body = json.loads(req.content)
    assert body["student_id"] == "1001"
    assert body["course_id"] == "C1"


@pytest.mark.asyncio
async def test_already_enrolled_counts_as_success() -> None:
    trigger = _trigger(lambda request: httpx.Response(409, json={"detail": "already enrolled"}))
    await trigger.grant_access("1001", "C1")
    await trigger.aclose()


@pytest.mark.asyncio
async def test_server_error_raises_without_retry() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, text="boom")

    trigger = _trigger(handler)
    with pytest.raises(EnrollmentError) as exc:
        await trigger.grant_access("1001", "C1")
    await trigger.aclose()
    assert "500" in str(exc.value)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transport_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    trigger = _trigger(handler)
    with pytest.raises(EnrollmentError):
        await trigger.grant_access("1001", "C1")
    await trigger.aclose()


@pytest.mark.asyncio
async def test_missing_base_url_raises() -> None:
    trigger = HttpEnrollmentTrigger("")
    with pytest.raises(EnrollmentError):
        await trigger.grant_access("1001", "C1")
    await trigger.aclose()
