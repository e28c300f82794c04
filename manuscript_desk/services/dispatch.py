# services/dispatch.py
"""Bulk send: templates x clients -> grouped manuscripts -> one alimtalk per client."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_desk.errors import NotFound, ValidationError
from manuscript_desk.models import Client, Manuscript, NotificationKind, Template
from manuscript_desk.services import lifecycle
from manuscript_desk.services.notifications import (
    BulkResult, NotificationGateway, Recipient, log_results,
)
from manuscript_desk.services.render import render
from manuscript_desk.services.rewrite import Draft
from manuscript_desk.services.tokens import confirm_url, new_group_id

logger = logging.getLogger(__name__)

MAX_TEMPLATES_PER_SEND = 2

# (template_id, client_id) -> pre-rewritten draft
Rewrites = Mapping[tuple[int, int], Draft]


@dataclass(slots=True)
class ConfirmLink:
    client_id: int
    client_name: str
    confirm_url: str
    phone_number: Optional[str]
    group_id: Optional[str] = None
    manuscript_ids: list[int] = field(default_factory=list)


@dataclass(slots=True)
class DispatchResult:
    manuscripts: list[Manuscript]
    confirm_links: list[ConfirmLink]
    notification: BulkResult


def _draft(value: Any) -> Draft:
    if isinstance(value, Draft):
        return value
    if isinstance(value, Mapping):
        return Draft(title=(value.get("title") or ""), content=(value.get("content") or ""))
    title = getattr(value, "title", None)
    content = getattr(value, "content", None)
    if title is None and content is None:
        raise ValidationError("Invalid rewritten content entry")
    return Draft(title=title or "", content=content or "")


def rewrites_from_payload(raw: Optional[Mapping[Any, Any]], legacy_template_id: Optional[int] = None) -> dict[tuple[int, int], Draft]:
    """Normalize request rewrites into a ``(template_id, client_id)`` keyed map.

    Multi-template requests nest ``{template_id: {client_id: {title, content}}}``.
    Legacy single-template requests send ``{client_id: {title, content}}``.
    """
    out: dict[tuple[int, int], Draft] = {}
    if not raw:
        return out
    try:
        if legacy_template_id is not None:
            for client_id, value in raw.items():
                if value:
                    out[(int(legacy_template_id), int(client_id))] = _draft(value)
            return out
        for template_id, per_client in raw.items():
            if not isinstance(per_client, Mapping):
                raise ValidationError("rewritten_contents must be keyed by template id, then client id")
            for client_id, value in per_client.items():
                if value:
                    out[(int(template_id), int(client_id))] = _draft(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("rewritten_contents keys must be numeric ids") from exc
    return out


class BulkDispatcher:
    def __init__(self, db: AsyncSession, notifier: NotificationGateway, base_url: Optional[str] = None):
        self.db = db
        self.notifier = notifier
        self.base_url = base_url

    # ---------------------------------------------
    # Loading
    # ---------------------------------------------
    async def _load_templates(self, template_ids: Sequence[int]) -> list[Template]:
        rows = (
            await self.db.execute(
                select(Template).where(Template.id.in_(list(template_ids)), Template.is_active.is_(True))
            )
        ).scalars().all()
        by_id = {t.id: t for t in rows}
        return [by_id[tid] for tid in template_ids if tid in by_id]

    async def _load_clients(self, client_ids: Sequence[int]) -> list[Client]:
        ordered = list(dict.fromkeys(int(c) for c in client_ids))
        rows = (
            await self.db.execute(
                select(Client).where(Client.id.in_(ordered), Client.is_active.is_(True))
            )
        ).scalars().all()
        by_id = {c.id: c for c in rows}
        # unknown or inactive ids are dropped silently
        return [by_id[cid] for cid in ordered if cid in by_id]

    def _content_for(self, template: Template, client: Client, rewrites: Rewrites) -> tuple[str, str]:
        rewritten = rewrites.get((template.id, client.id))
        title = rewritten.title if rewritten and rewritten.title else render(template.title, client)
        content = rewritten.content if rewritten and rewritten.content else render(template.content, client)
        return title, content

    # ---------------------------------------------
    # Entry points
    # ---------------------------------------------
    async def send(
        self,
        template_ids: Sequence[int],
        client_ids: Sequence[int],
        rewrites: Optional[Rewrites] = None,
    ) -> DispatchResult:
        ids = list(dict.fromkeys(int(t) for t in template_ids or []))
        if not ids:
            raise ValidationError("At least one template is required")
        if len(ids) > MAX_TEMPLATES_PER_SEND:
            raise ValidationError(f"At most {MAX_TEMPLATES_PER_SEND} templates can be sent at once")
        return await self._dispatch(ids, client_ids, rewrites or {}, grouped=True)

    async def send_single(
        self,
        template_id: int,
        client_ids: Sequence[int],
        rewrites: Optional[Rewrites] = None,
    ) -> DispatchResult:
        """Legacy path: one template, one ungrouped manuscript per client."""
        if not template_id:
            raise ValidationError("template_id is required")
        return await self._dispatch([int(template_id)], client_ids, rewrites or {}, grouped=False)

    async def _dispatch(
        self,
        template_ids: list[int],
        client_ids: Sequence[int],
        rewrites: Rewrites,
        *,
        grouped: bool,
    ) -> DispatchResult:
        if not client_ids:
            raise ValidationError("At least one client is required")

        templates = await self._load_templates(template_ids)
        if not templates:
            raise NotFound("Template not found")
        clients = await self._load_clients(client_ids)
        if not clients:
            raise NotFound("No valid clients found")

        group_ids = {c.id: (new_group_id() if grouped else None) for c in clients}
        representatives: dict[int, Manuscript] = {}
        members: dict[int, list[int]] = {c.id: [] for c in clients}
        created: list[int] = []

        # templates outer, clients inner: a client's representative is the
        # manuscript built from the first selected template
        for template in templates:
            for client in clients:
                title, content = self._content_for(template, client, rewrites)
                manuscript = await lifecycle.create_manuscript(
                    self.db, client, template, title, content, group_id=group_ids[client.id],
                )
                created.append(manuscript.id)
                members[client.id].append(manuscript.id)
                representatives.setdefault(client.id, manuscript)

        for template in templates:
            await lifecycle.bump_send_count(self.db, template.id, len(clients))
        await self.db.commit()
        logger.info(
            "dispatch: created %d manuscript(s) for %d client(s) x %d template(s)",
            len(created), len(clients), len(templates),
        )

        links: list[ConfirmLink] = []
        recipients: list[Recipient] = []
        for client in clients:
            rep = representatives[client.id]
            url = confirm_url(rep.confirm_token, self.base_url)
            links.append(
                ConfirmLink(
                    client_id=client.id,
                    client_name=client.name,
                    confirm_url=url,
                    phone_number=client.contact,
                    group_id=group_ids[client.id],
                    manuscript_ids=members[client.id],
                )
            )
            recipients.append(
                Recipient(
                    phone=client.contact,
                    client_name=client.name,
                    confirm_url=url,
                    title=rep.title,
                    kind=NotificationKind.confirm_request,
                    client_id=client.id,
                    manuscript_id=rep.id,
                )
            )

        notification = await self.notifier.send_bulk(recipients)
        log_results(self.db, notification.results)
        await self.db.commit()

        manuscripts = await lifecycle.fetch_manuscripts(self.db, created)
        return DispatchResult(manuscripts=manuscripts, confirm_links=links, notification=notification)

    async def send_custom(
        self,
        client_id: int,
        title: Optional[str],
        content: Optional[str],
        topic: Optional[str] = None,
    ) -> DispatchResult:
        """One ad-hoc manuscript (no template, no group) for a single client."""
        if not client_id or not (title or "").strip() or not (content or "").strip():
            raise ValidationError("client_id, title and content are required")
        clients = await self._load_clients([client_id])
        if not clients:
            raise NotFound("Client not found")
        client = clients[0]

        manuscript = await lifecycle.create_manuscript(self.db, client, None, title, content)
        await self.db.commit()

        url = confirm_url(manuscript.confirm_token, self.base_url)
        notification = await self.notifier.send_bulk(
            [
                Recipient(
                    phone=client.contact,
                    client_name=client.name,
                    confirm_url=url,
                    title=topic or title,
                    client_id=client.id,
                    manuscript_id=manuscript.id,
                )
            ]
        )
        log_results(self.db, notification.results)
        await self.db.commit()

        link = ConfirmLink(
            client_id=client.id,
            client_name=client.name,
            confirm_url=url,
            phone_number=client.contact,
            manuscript_ids=[manuscript.id],
        )
        return DispatchResult(
            manuscripts=await lifecycle.fetch_manuscripts(self.db, [manuscript.id]),
            confirm_links=[link],
            notification=notification,
        )


__all__ = [
    "MAX_TEMPLATES_PER_SEND",
    "ConfirmLink",
    "DispatchResult",
    "BulkDispatcher",
    "rewrites_from_payload",
]
