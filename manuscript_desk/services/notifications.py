"""Alimtalk delivery of confirm links.

``NotificationGateway`` is the contract the lifecycle engine and the bulk
dispatcher consume. Concrete providers only implement ``_deliver``; the base
class owns phone validation, message rendering and bulk aggregation so every
provider fails per recipient instead of raising for the whole batch.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import httpx
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_desk.models import NotificationKind, NotificationLog
from manuscript_desk.settings.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[1] / "templates"))

NO_PHONE_NUMBER = "No phone number"
_MOBILE_RE = re.compile(r"^01[0-9]{8,9}$")

# provider template codes registered with the kakao channel
TEMPLATE_CODES: dict[NotificationKind, str] = {
    NotificationKind.confirm_request: "wiz1",
    NotificationKind.revision_complete: "wiz2",
    NotificationKind.reminder: "wiz3",
}

BUTTON_NAMES: dict[NotificationKind, str] = {
    NotificationKind.confirm_request: "원고 확인하기",
    NotificationKind.revision_complete: "수정 원고 확인하기",
    NotificationKind.reminder: "원고 확인하기",
}


@dataclass(slots=True)
class Recipient:
    phone: Optional[str]
    client_name: str
    confirm_url: str
    title: Optional[str] = None
    kind: NotificationKind = NotificationKind.confirm_request
    client_id: Optional[int] = None
    manuscript_id: Optional[int] = None


@dataclass(slots=True)
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class BulkResult:
    total: int = 0
    success: int = 0
    failed: int = 0
    results: list[tuple[Recipient, SendResult]] = field(default_factory=list)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return [
            {
                "client_id": r.client_id,
                "client_name": r.client_name,
                "phone_number": r.phone,
                "error": res.error,
            }
            for r, res in self.results
            if not res.success
        ]

    def summary(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "errors": self.errors,
        }


def normalize_phone(phone: str) -> str:
    return re.sub(r"[\s-]", "", phone or "")


def is_mobile_number(phone: str) -> bool:
    return bool(_MOBILE_RE.match(normalize_phone(phone)))


def render_message(kind: NotificationKind, client_name: str, confirm_url: str, title: Optional[str] = None) -> str:
    ctx = {"client_name": client_name, "confirm_url": confirm_url, "title": title or ""}
    return templates.get_template(f"alimtalk/{kind.value}.txt").render(ctx).strip()


class NotificationGateway:
    """Sends confirm-link messages to advertisers."""

    name = "base"

    def __init__(self, send_delay: float = 0.0):
        self.send_delay = max(0.0, send_delay)

    async def _deliver(self, phone: str, kind: NotificationKind, text: str, variables: dict[str, str],
                       confirm_url: str) -> SendResult:
        raise NotImplementedError

    async def send_one(
        self,
        phone: Optional[str],
        client_name: str,
        confirm_url: str,
        *,
        kind: NotificationKind = NotificationKind.confirm_request,
        title: Optional[str] = None,
    ) -> SendResult:
        if not (phone or "").strip():
            logger.warning("alimtalk: no phone number for %s, skipping", client_name)
            return SendResult(success=False, error=NO_PHONE_NUMBER)

        text = render_message(kind, client_name, confirm_url, title)
        variables = {"업체명": client_name, "확인링크": confirm_url}
        try:
            result = await self._deliver(normalize_phone(phone), kind, text, variables, confirm_url)
        except httpx.HTTPError as exc:
            logger.error("alimtalk: %s transport error for %s: %s", self.name, client_name, exc)
            return SendResult(success=False, error=str(exc) or exc.__class__.__name__)

        if result.success:
            logger.info("alimtalk: sent %s to %s (%s) id=%s", kind.value, client_name, phone, result.message_id)
        else:
            logger.error("alimtalk: %s failed for %s: %s", kind.value, client_name, result.error)
        return result

    async def send_bulk(self, recipients: Sequence[Recipient]) -> BulkResult:
        """Send sequentially, pausing between calls; never raises per recipient."""
        out = BulkResult(total=len(recipients))
        for idx, recipient in enumerate(recipients):
            result = await self.send_one(
                recipient.phone,
                recipient.client_name,
                recipient.confirm_url,
                kind=recipient.kind,
                title=recipient.title,
            )
            out.results.append((recipient, result))
            if result.success:
                out.success += 1
            else:
                out.failed += 1
            if self.send_delay and idx < len(recipients) - 1:
                await asyncio.sleep(self.send_delay)
        logger.info("alimtalk bulk done: total=%d success=%d failed=%d", out.total, out.success, out.failed)
        return out


class DummyGateway(NotificationGateway):
    """Logs messages instead of sending them."""

    name = "dummy"

    async def _deliver(self, phone, kind, text, variables, confirm_url) -> SendResult:
        logger.info(
            "=== DUMMY ALIMTALK (not sent) ===\nTo: %s\nTemplate: %s\nLink: %s\n%s\n=== END DUMMY ALIMTALK ===",
            phone, TEMPLATE_CODES[kind], confirm_url, text,
        )
        return SendResult(success=True, message_id=f"dummy:{uuid.uuid4().hex[:12]}")


class BizgoGateway(NotificationGateway):
    """BizGo OMNI API v1 alimtalk sender."""

    name = "bizgo"

    def __init__(
        self,
        api_key: Optional[str],
        sender_key: Optional[str],
        base_url: str = "https://mars.ibapi.kr/api/comm",
        *,
        timeout: float = 15.0,
        send_delay: float = 0.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(send_delay=send_delay)
        self.api_key = api_key
        self.sender_key = sender_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _payload(self, phone: str, kind: NotificationKind, text: str, variables: dict[str, str],
                 confirm_url: str) -> dict[str, Any]:
        code = TEMPLATE_CODES[kind]
        return {
            "messageFlow": [
                {
                    "alimtalk": {
                        "senderKey": self.sender_key,
                        "templateCode": code,
                        "msgType": "AT",
                        "text": text,
                        "buttons": [
                            {
                                "name": BUTTON_NAMES[kind],
                                "type": "WL",
                                "urlMobile": confirm_url,
                                "urlPc": confirm_url,
                            }
                        ],
                    }
                }
            ],
            "destinations": [{"to": phone, "replaceWords": variables}],
            "ref": f"manuscript_{code}_{int(time.time() * 1000)}",
        }

    async def _deliver(self, phone, kind, text, variables, confirm_url) -> SendResult:
        if not self.api_key or not self.sender_key:
            return SendResult(success=False, error="BizGo API credentials not configured")

        payload = self._payload(phone, kind, text, variables, confirm_url)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.post(
                f"{self.base_url}/v1/send/omni",
                json=payload,
                headers={"Authorization": self.api_key},
            )
        try:
            data = r.json()
        except ValueError:
            data = {}

        destinations = (data or {}).get("destinations") or []
        if r.is_success and destinations:
            dest = destinations[0] or {}
            ok = dest.get("code") == "A000" or dest.get("result") == "SUCCESS"
            return SendResult(
                success=ok,
                message_id=dest.get("msgKey"),
                error=None if ok else f"{dest.get('code')}: {dest.get('result')}",
            )
        return SendResult(
            success=False,
            error=(data or {}).get("message") or (data or {}).get("error") or f"HTTP {r.status_code}",
        )


def build_notifier(cfg: Settings | None = None) -> NotificationGateway:
    """Pick the provider named by ``NOTIFY_TRANSPORT``."""
    cfg = cfg or default_settings
    delay = max(0, cfg.NOTIFY_SEND_DELAY_MS) / 1000.0
    transport = (cfg.NOTIFY_TRANSPORT or "dummy").lower()
    if transport == "bizgo":
        return BizgoGateway(
            cfg.BIZGO_API_KEY,
            cfg.BIZGO_SENDER_KEY,
            cfg.BIZGO_BASE_URL,
            timeout=cfg.NOTIFY_TIMEOUT_SEC,
            send_delay=delay,
        )
    return DummyGateway(send_delay=delay)


def log_results(db: AsyncSession, results: Iterable[tuple[Recipient, SendResult]]) -> None:
    """Queue one NotificationLog row per attempt; caller commits."""
    for recipient, result in results:
        db.add(
            NotificationLog(
                client_id=recipient.client_id,
                manuscript_id=recipient.manuscript_id,
                kind=recipient.kind,
                phone=normalize_phone(recipient.phone or "") or None,
                success=result.success,
                message_id=result.message_id,
                error=result.error,
            )
        )


async def notify(db: AsyncSession, gateway: NotificationGateway, recipient: Recipient) -> SendResult:
    """Send a single message and log the attempt."""
    result = await gateway.send_one(
        recipient.phone,
        recipient.client_name,
        recipient.confirm_url,
        kind=recipient.kind,
        title=recipient.title,
    )
    log_results(db, [(recipient, result)])
    await db.commit()
    return result


__all__ = [
    "NO_PHONE_NUMBER",
    "Recipient",
    "SendResult",
    "BulkResult",
    "NotificationGateway",
    "DummyGateway",
    "BizgoGateway",
    "build_notifier",
    "normalize_phone",
    "is_mobile_number",
    "render_message",
    "log_results",
    "notify",
]
