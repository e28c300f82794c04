# services/lifecycle.py
"""Manuscript state machine and group confirmation.

pending -> approved | revision | cancelled | auto_approved
revision -> pending (resend by staff)

Advertiser actions arrive with a confirm token only. Every transition out of
``pending`` is a conditional UPDATE (``... WHERE status = 'pending'``) so two
concurrent confirmations of the same rows cannot both succeed, and counters are
moved with ``col = col + n`` in the database.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from manuscript_desk.errors import (
    AlreadyProcessed, Forbidden, InternalError, NotFound, ValidationError,
)
from manuscript_desk.models import (
    Client, Manuscript, ManuscriptStatus, NotificationKind, Template, utcnow,
)
from manuscript_desk.services.notifications import (
    BulkResult, NotificationGateway, Recipient, SendResult, log_results, notify,
)
from manuscript_desk.services.tokens import confirm_url, new_confirm_token

logger = logging.getLogger(__name__)

PENDING = ManuscriptStatus.pending


@dataclass(slots=True)
class Transition:
    """Result of a staff-driven transition that produced a new confirm link."""
    manuscript: Manuscript
    confirm_url: str
    notification: SendResult


def _status_value(status: Any) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, ManuscriptStatus) else str(status)


# ---------------------------------------------
# Loading
# ---------------------------------------------
def _with_relations(stmt):
    return stmt.options(selectinload(Manuscript.client), selectinload(Manuscript.template))


async def fetch_manuscripts(db: AsyncSession, ids: Sequence[int]) -> list[Manuscript]:
    """Reload rows (with client/template) in insertion order."""
    if not ids:
        return []
    stmt = (
        _with_relations(select(Manuscript))
        .where(Manuscript.id.in_(list(ids)))
        .order_by(Manuscript.id.asc())
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_manuscript(db: AsyncSession, manuscript_id: int) -> Manuscript:
    rows = await fetch_manuscripts(db, [manuscript_id])
    if not rows:
        raise NotFound("Manuscript not found")
    return rows[0]


async def get_by_token(db: AsyncSession, token: str) -> Manuscript:
    # unknown and malformed tokens look the same to the caller
    if not token or len(token) > 64:
        raise NotFound("Invalid token")
    stmt = (
        _with_relations(select(Manuscript))
        .where(Manuscript.confirm_token == token)
        .execution_options(populate_existing=True)
    )
    manuscript = (await db.execute(stmt)).scalars().first()
    if not manuscript:
        raise NotFound("Invalid token")
    return manuscript


async def group_members(db: AsyncSession, group_id: str) -> list[Manuscript]:
    stmt = (
        _with_relations(select(Manuscript))
        .where(Manuscript.group_id == group_id)
        .order_by(Manuscript.created_at.asc(), Manuscript.id.asc())
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().all())


async def group_representative(db: AsyncSession, manuscript: Manuscript) -> Manuscript:
    """The first-created member of the manuscript's group (or itself)."""
    if not manuscript.group_id:
        return manuscript
    first = (
        await db.execute(
            select(Manuscript)
            .where(Manuscript.group_id == manuscript.group_id)
            .order_by(Manuscript.id.asc())
            .limit(1)
        )
    ).scalars().first()
    return first or manuscript


async def confirm_view(db: AsyncSession, token: str) -> tuple[Manuscript, list[Manuscript]]:
    manuscript = await get_by_token(db, token)
    group = [manuscript]
    if manuscript.group_id:
        group = await group_members(db, manuscript.group_id) or [manuscript]
    return manuscript, group


# ---------------------------------------------
# Creation
# ---------------------------------------------
async def create_manuscript(
    db: AsyncSession,
    client: Client,
    template: Optional[Template],
    title: str,
    content: str,
    group_id: Optional[str] = None,
    *,
    revision_count: int = 0,
) -> Manuscript:
    """Insert a fresh pending manuscript. The caller owns the transaction."""
    if not (title or "").strip() or not (content or "").strip():
        raise ValidationError("Title and content are required")
    now = utcnow()
    manuscript = Manuscript(
        client_id=client.id,
        template_id=template.id if template is not None else None,
        title=title,
        content=content,
        status=PENDING,
        revision_count=revision_count,
        confirm_token=new_confirm_token(),
        group_id=group_id,
        sent_at=now,
        confirmed_at=None,
    )
    db.add(manuscript)
    # flush per row so ids follow construction order
    await db.flush()
    return manuscript


async def bump_send_count(db: AsyncSession, template_id: int, n: int) -> None:
    if n:
        await db.execute(
            update(Template)
            .where(Template.id == template_id)
            .values(send_count=Template.send_count + n)
        )


async def bump_approve_counts(db: AsyncSession, template_ids: Iterable[Optional[int]]) -> None:
    """One UPDATE per template, incremented by the number of approved rows."""
    for template_id, n in Counter(t for t in template_ids if t is not None).items():
        await db.execute(
            update(Template)
            .where(Template.id == template_id)
            .values(approve_count=Template.approve_count + n)
        )


# ---------------------------------------------
# Advertiser actions (token based)
# ---------------------------------------------
async def _resolve_targets(db: AsyncSession, manuscript: Manuscript, manuscript_id: Optional[int]) -> list[int]:
    if manuscript_id is not None:
        if manuscript_id == manuscript.id:
            return [manuscript.id]
        other_group = await db.scalar(select(Manuscript.group_id).where(Manuscript.id == manuscript_id))
        if not manuscript.group_id or other_group != manuscript.group_id:
            raise Forbidden("Manuscript does not belong to this confirmation link")
        return [manuscript_id]

    if manuscript.group_id:
        pending_ids = (
            await db.execute(
                select(Manuscript.id)
                .where(Manuscript.group_id == manuscript.group_id, Manuscript.status == PENDING)
                .order_by(Manuscript.id.asc())
            )
        ).scalars().all()
        return list(pending_ids) or [manuscript.id]

    return [manuscript.id]


async def _already_processed(db: AsyncSession, manuscript: Manuscript) -> AlreadyProcessed:
    current = await db.scalar(select(Manuscript.status).where(Manuscript.id == manuscript.id))
    await db.rollback()
    return AlreadyProcessed(_status_value(current))


async def approve_by_token(db: AsyncSession, token: str, manuscript_id: Optional[int] = None) -> list[Manuscript]:
    manuscript = await get_by_token(db, token)
    target_ids = await _resolve_targets(db, manuscript, manuscript_id)

    now = utcnow()
    stmt = (
        update(Manuscript)
        .where(Manuscript.id.in_(target_ids), Manuscript.status == PENDING)
        .values(status=ManuscriptStatus.approved, confirmed_at=now, updated_at=now)
        .returning(Manuscript.id, Manuscript.template_id)
        .execution_options(synchronize_session=False)
    )
    rows = (await db.execute(stmt)).all()
    if not rows:
        raise await _already_processed(db, manuscript)

    await bump_approve_counts(db, [row.template_id for row in rows])
    await db.commit()
    logger.info("confirm: approved %d manuscript(s) via token of #%s", len(rows), manuscript.id)
    return await fetch_manuscripts(db, [row.id for row in rows])


async def request_revision(
    db: AsyncSession,
    token: str,
    revision_text: Optional[str],
    manuscript_id: Optional[int] = None,
) -> list[Manuscript]:
    manuscript = await get_by_token(db, token)
    if not (revision_text or "").strip():
        raise ValidationError("Revision request content required")
    target_ids = await _resolve_targets(db, manuscript, manuscript_id)

    now = utcnow()
    updated: list[int] = []
    # row by row so each revision_count increment is its own conditional write
    for target_id in target_ids:
        stmt = (
            update(Manuscript)
            .where(Manuscript.id == target_id, Manuscript.status == PENDING)
            .values(
                status=ManuscriptStatus.revision,
                revision_request=revision_text,
                revision_count=Manuscript.revision_count + 1,
                confirmed_at=now,
                updated_at=now,
            )
            .returning(Manuscript.id)
            .execution_options(synchronize_session=False)
        )
        row_id = (await db.execute(stmt)).scalar_one_or_none()
        if row_id is not None:
            updated.append(row_id)

    if not updated:
        raise await _already_processed(db, manuscript)

    await db.commit()
    logger.info("confirm: revision requested on %d manuscript(s) via token of #%s", len(updated), manuscript.id)
    return await fetch_manuscripts(db, updated)


# ---------------------------------------------
# Staff actions
# ---------------------------------------------
async def resend(
    db: AsyncSession,
    notifier: NotificationGateway,
    manuscript_id: int,
    title: Optional[str],
    content: Optional[str],
) -> Transition:
    """Put a manuscript back to pending with new text and a new token."""
    if not (title or "").strip() or not (content or "").strip():
        raise ValidationError("Title and content are required")

    manuscript = await get_manuscript(db, manuscript_id)
    if manuscript.status == ManuscriptStatus.cancelled:
        raise ValidationError("Cancelled manuscripts cannot be resent")
    was_revision = manuscript.status == ManuscriptStatus.revision

    now = utcnow()
    token = new_confirm_token()
    manuscript.title = title
    manuscript.content = content
    manuscript.status = PENDING
    manuscript.confirm_token = token
    manuscript.sent_at = now
    manuscript.confirmed_at = None
    manuscript.revision_request = None
    manuscript.reminded_at = None
    await db.commit()

    url = confirm_url(token)
    client = manuscript.client
    result = await notify(
        db,
        notifier,
        Recipient(
            phone=client.contact if client else None,
            client_name=client.name if client else "",
            confirm_url=url,
            title=title,
            kind=NotificationKind.revision_complete if was_revision else NotificationKind.confirm_request,
            client_id=manuscript.client_id,
            manuscript_id=manuscript.id,
        ),
    )
    return Transition(await get_manuscript(db, manuscript.id), url, result)


async def change_template(
    db: AsyncSession,
    notifier: NotificationGateway,
    manuscript_id: int,
    template_id: Optional[int],
    title: Optional[str],
    content: Optional[str],
) -> Transition:
    """Retire a manuscript and send a replacement built from another template.

    Cancelling the old row, inserting the new one and counting the send are a
    single transaction; on failure nothing is visible.
    """
    if not template_id or not (title or "").strip() or not (content or "").strip():
        raise ValidationError("Template ID, title and content are required")

    old = await get_manuscript(db, manuscript_id)
    if old.status == ManuscriptStatus.cancelled:
        raise ValidationError("Manuscript is already cancelled")
    template = await db.get(Template, template_id)
    if not template or not template.is_active:
        raise NotFound("Template not found")

    try:
        old.status = ManuscriptStatus.cancelled
        old.updated_at = utcnow()
        # new row leaves the old group and keeps the revision history
        new = await create_manuscript(
            db, old.client, template, title, content, group_id=None,
            revision_count=old.revision_count or 0,
        )
        await bump_send_count(db, template.id, 1)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("change_template: failed for manuscript %s", manuscript_id)
        raise InternalError(f"Failed to change template: {exc.__class__.__name__}") from exc

    url = confirm_url(new.confirm_token)
    client = old.client
    result = await notify(
        db,
        notifier,
        Recipient(
            phone=client.contact if client else None,
            client_name=client.name if client else "",
            confirm_url=url,
            title=title,
            client_id=new.client_id,
            manuscript_id=new.id,
        ),
    )
    return Transition(await get_manuscript(db, new.id), url, result)


async def update_manuscript(db: AsyncSession, manuscript_id: int, changes: dict[str, Any]) -> Manuscript:
    """Staff patch of status/title/content/revision_request.

    A status change is a conditional UPDATE against the status this request
    loaded, so a token confirmation that lands in between wins and the staff
    write is rejected with the row's current status.
    """
    manuscript = await get_manuscript(db, manuscript_id)

    for field in ("title", "content", "revision_request"):
        if field in changes:
            setattr(manuscript, field, changes[field])

    status = changes.get("status")
    if status is not None:
        status = ManuscriptStatus(status)
        previous = manuscript.status
        if status != previous:
            now = utcnow()
            values: dict[str, Any] = {"status": status, "updated_at": now}
            if status in (ManuscriptStatus.approved, ManuscriptStatus.revision):
                values["confirmed_at"] = now
            if status == ManuscriptStatus.revision:
                values["revision_count"] = Manuscript.revision_count + 1
            stmt = (
                update(Manuscript)
                .where(Manuscript.id == manuscript.id, Manuscript.status == previous)
                .values(**values)
                .returning(Manuscript.template_id)
                .execution_options(synchronize_session=False)
            )
            row = (await db.execute(stmt)).first()
            if row is None:
                raise await _already_processed(db, manuscript)
            if status == ManuscriptStatus.approved and previous == PENDING:
                await bump_approve_counts(db, [row.template_id])
            logger.info("staff: manuscript #%s %s -> %s", manuscript.id, _status_value(previous), status.value)

    await db.commit()
    return await get_manuscript(db, manuscript_id)


# ---------------------------------------------
# SLA sweeps
# ---------------------------------------------
async def auto_approve_overdue(db: AsyncSession, hours: int, now: Optional[datetime] = None) -> list[int]:
    """Move pending manuscripts older than ``hours`` to auto_approved.

    Template counters are not touched.
    """
    now = now or utcnow()
    cutoff = now - timedelta(hours=hours)
    stmt = (
        update(Manuscript)
        .where(Manuscript.status == PENDING, Manuscript.sent_at < cutoff)
        .values(status=ManuscriptStatus.auto_approved, confirmed_at=now, updated_at=now)
        .returning(Manuscript.id)
        .execution_options(synchronize_session=False)
    )
    ids = list((await db.execute(stmt)).scalars().all())
    await db.commit()
    if ids:
        logger.info("sweep: auto-approved %d manuscript(s) older than %dh", len(ids), hours)
    return ids


async def remind_overdue(
    db: AsyncSession,
    notifier: NotificationGateway,
    hours: int,
    now: Optional[datetime] = None,
    *,
    expire_hours: Optional[int] = None,
) -> BulkResult:
    """Send one reminder per unreminded, overdue group (or lone manuscript).

    Rows sent ``expire_hours`` or more ago are left to the auto-approve sweep.
    """
    now = now or utcnow()
    cutoff = now - timedelta(hours=hours)
    stmt = _with_relations(select(Manuscript)).where(
        Manuscript.status == PENDING,
        Manuscript.sent_at < cutoff,
        Manuscript.reminded_at.is_(None),
    )
    if expire_hours is not None:
        stmt = stmt.where(Manuscript.sent_at >= now - timedelta(hours=expire_hours))
    overdue = (await db.execute(stmt.order_by(Manuscript.id.asc()))).scalars().all()
    if not overdue:
        return BulkResult()

    recipients: list[Recipient] = []
    seen: set[str] = set()
    for m in overdue:
        key = m.group_id or f"manuscript:{m.id}"
        if key in seen:
            continue
        seen.add(key)
        rep = await group_representative(db, m)
        recipients.append(
            Recipient(
                phone=m.client.contact if m.client else None,
                client_name=m.client.name if m.client else "",
                confirm_url=confirm_url(rep.confirm_token),
                title=m.title,
                kind=NotificationKind.reminder,
                client_id=m.client_id,
                manuscript_id=rep.id,
            )
        )

    result = await notifier.send_bulk(recipients)
    await db.execute(
        update(Manuscript)
        .where(Manuscript.id.in_([m.id for m in overdue]), Manuscript.reminded_at.is_(None))
        .values(reminded_at=now)
        .execution_options(synchronize_session=False)
    )
    log_results(db, result.results)
    await db.commit()
    return result


__all__ = [
    "Transition",
    "fetch_manuscripts",
    "get_manuscript",
    "get_by_token",
    "group_members",
    "group_representative",
    "confirm_view",
    "create_manuscript",
    "bump_send_count",
    "bump_approve_counts",
    "approve_by_token",
    "request_revision",
    "resend",
    "change_template",
    "update_manuscript",
    "auto_approve_overdue",
    "remind_overdue",
]
