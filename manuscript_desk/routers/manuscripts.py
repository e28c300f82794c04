from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database import get_db
from ..deps import get_notifier
from ..models import Manuscript, ManuscriptStatus
from ..schemas import (
    BulkSendRequest, ChangeTemplateRequest, ConfirmLinkRead, ManuscriptRead,
    ManuscriptUpdate, ResendRequest,
)
from ..services import lifecycle
from ..services.dispatch import BulkDispatcher, DispatchResult, rewrites_from_payload
from ..services.notifications import NotificationGateway
from ..services.stats import paginate, status_counts
from ..settings.config import settings

router = APIRouter(prefix="/api/manuscripts", tags=["admin", "manuscripts"])


def dispatch_payload(result: DispatchResult) -> dict:
    return {
        "data": [ManuscriptRead.model_validate(m) for m in result.manuscripts],
        "confirmLinks": [ConfirmLinkRead.model_validate(link) for link in result.confirm_links],
        "alimtalk": result.notification.summary(),
    }


@router.get("")
async def list_manuscripts(
    status: Optional[ManuscriptStatus] = None,
    exclude_cancelled: bool = False,
    client_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Manuscript)
    if status is not None:
        stmt = stmt.where(Manuscript.status == status)
    elif exclude_cancelled:
        stmt = stmt.where(Manuscript.status != ManuscriptStatus.cancelled)
    if client_id is not None:
        stmt = stmt.where(Manuscript.client_id == client_id)
    stmt = stmt.order_by(Manuscript.sent_at.desc(), Manuscript.id.desc())

    rows, pagination = await paginate(
        db, stmt, page, limit,
        options=[selectinload(Manuscript.client), selectinload(Manuscript.template)],
    )
    return {"data": [ManuscriptRead.model_validate(m) for m in rows], "pagination": pagination}


@router.post("", status_code=201)
async def bulk_send(
    payload: BulkSendRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
):
    dispatcher = BulkDispatcher(db, notifier)
    if payload.template_ids:
        result = await dispatcher.send(
            payload.template_ids,
            payload.client_ids,
            rewrites_from_payload(payload.rewritten_contents),
        )
    else:
        result = await dispatcher.send_single(
            payload.template_id,
            payload.client_ids,
            rewrites_from_payload(payload.rewritten_contents, legacy_template_id=payload.template_id),
        )
    return dispatch_payload(result)


@router.get("/stats")
async def manuscript_stats(db: AsyncSession = Depends(get_db)):
    return {"stats": await status_counts(db)}


@router.post("/sweep")
async def run_sla_sweep(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
):
    approved = await lifecycle.auto_approve_overdue(db, settings.AUTO_APPROVE_HOURS)
    reminded = await lifecycle.remind_overdue(
        db, notifier, settings.REMINDER_HOURS, expire_hours=settings.AUTO_APPROVE_HOURS,
    )
    return {"reminders": reminded.summary(), "auto_approved": approved}


@router.get("/{manuscript_id}")
async def get_manuscript(manuscript_id: int, db: AsyncSession = Depends(get_db)):
    manuscript = await lifecycle.get_manuscript(db, manuscript_id)
    return {"data": ManuscriptRead.model_validate(manuscript)}


@router.put("/{manuscript_id}")
async def update_manuscript(manuscript_id: int, payload: ManuscriptUpdate, db: AsyncSession = Depends(get_db)):
    manuscript = await lifecycle.update_manuscript(db, manuscript_id, payload.model_dump(exclude_unset=True))
    return {"data": ManuscriptRead.model_validate(manuscript)}


@router.post("/{manuscript_id}/resend")
async def resend_manuscript(
    manuscript_id: int,
    payload: ResendRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
):
    res = await lifecycle.resend(db, notifier, manuscript_id, payload.title, payload.content)
    return {
        "data": ManuscriptRead.model_validate(res.manuscript),
        "confirmUrl": res.confirm_url,
        "alimtalk": {"success": res.notification.success, "error": res.notification.error},
        "message": "Manuscript resent successfully",
    }


@router.post("/{manuscript_id}/change-template")
async def change_manuscript_template(
    manuscript_id: int,
    payload: ChangeTemplateRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
):
    res = await lifecycle.change_template(
        db, notifier, manuscript_id, payload.template_id, payload.title, payload.content,
    )
    return {
        "data": ManuscriptRead.model_validate(res.manuscript),
        "confirmUrl": res.confirm_url,
        "alimtalk": {"success": res.notification.success, "error": res.notification.error},
        "message": "Template changed and new manuscript created successfully",
    }
