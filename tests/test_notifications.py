import json

import httpx
import pytest

from manuscript_desk.models import NotificationKind
from manuscript_desk.services.notifications import (
    NO_PHONE_NUMBER, BizgoGateway, DummyGateway, Recipient, build_notifier,
    is_mobile_number, normalize_phone, render_message,
)
from manuscript_desk.settings.config import Settings


def test_phone_helpers():
    assert normalize_phone("010-1234 5678") == "01012345678"
    assert is_mobile_number("010-1234-5678")
    assert is_mobile_number("0111234567")
    assert not is_mobile_number("02-123-4567")
    assert not is_mobile_number("")


def test_render_message_per_kind():
    text = render_message(NotificationKind.confirm_request, "ABC Academy", "https://x/confirm/t", "겨울방학 특강")
    assert "ABC Academy" in text
    assert "https://x/confirm/t" in text
    assert "겨울방학 특강" in text

    reminder = render_message(NotificationKind.reminder, "ABC Academy", "https://x/confirm/t")
    assert reminder != text
    assert "https://x/confirm/t" in reminder


async def test_missing_phone_fails_without_delivery():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    gateway = BizgoGateway("key", "sender", transport=httpx.MockTransport(handler))
    result = await gateway.send_one("  ", "ABC Academy", "https://x/confirm/t")

    assert not result.success
    assert result.error == NO_PHONE_NUMBER
    assert calls == []


async def test_bizgo_success_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"destinations": [{"code": "A000", "msgKey": "m-1"}]})

    gateway = BizgoGateway("key", "sender", "https://bizgo.test/api/comm", transport=httpx.MockTransport(handler))
    result = await gateway.send_one(
        "010-1234-5678", "ABC Academy", "https://x/confirm/t", kind=NotificationKind.revision_complete,
    )

    assert result.success
    assert result.message_id == "m-1"
    assert seen["url"] == "https://bizgo.test/api/comm/v1/send/omni"
    assert seen["auth"] == "key"
    alimtalk = seen["body"]["messageFlow"][0]["alimtalk"]
    assert alimtalk["templateCode"] == "wiz2"
    assert alimtalk["buttons"][0]["urlMobile"] == "https://x/confirm/t"
    assert seen["body"]["destinations"][0]["to"] == "01012345678"


async def test_bizgo_rejection_and_transport_errors():
    def reject(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"destinations": [{"code": "K105", "result": "FAIL"}]})

    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    rejected = await BizgoGateway("k", "s", transport=httpx.MockTransport(reject)).send_one(
        "01012345678", "A", "https://x/confirm/t",
    )
    assert not rejected.success
    assert rejected.error == "K105: FAIL"

    failed = await BizgoGateway("k", "s", transport=httpx.MockTransport(boom)).send_one(
        "01012345678", "A", "https://x/confirm/t",
    )
    assert not failed.success
    assert "connection refused" in failed.error


async def test_bizgo_without_credentials():
    result = await BizgoGateway(None, None).send_one("01012345678", "A", "https://x/confirm/t")
    assert not result.success
    assert result.error == "BizGo API credentials not configured"


async def test_bulk_aggregates_per_recipient():
    gateway = DummyGateway()
    recipients = [
        Recipient(phone="01011112222", client_name="A", confirm_url="https://x/confirm/1", client_id=1),
        Recipient(phone=None, client_name="B", confirm_url="https://x/confirm/2", client_id=2),
    ]

    result = await gateway.send_bulk(recipients)

    assert (result.total, result.success, result.failed) == (2, 1, 1)
    assert result.errors == [
        {"client_id": 2, "client_name": "B", "phone_number": None, "error": NO_PHONE_NUMBER},
    ]
    assert result.results[0][1].message_id.startswith("dummy:")


@pytest.mark.parametrize("transport, expected", [("dummy", DummyGateway), ("bizgo", BizgoGateway)])
def test_build_notifier(transport, expected):
    cfg = Settings(NOTIFY_TRANSPORT=transport, NOTIFY_SEND_DELAY_MS=0)
    assert isinstance(build_notifier(cfg), expected)
