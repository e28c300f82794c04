from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_notifier
from ..errors import UpstreamFailure, ValidationError
from ..models import NotificationLog
from ..schemas import ManualAlimtalkRequest, NotificationLogRead
from ..services.notifications import NotificationGateway, Recipient, is_mobile_number, notify

router = APIRouter(prefix="/api/alimtalk", tags=["admin", "alimtalk"])


@router.post("/send")
async def send_alimtalk(
    payload: ManualAlimtalkRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
):
    if not is_mobile_number(payload.phone):
        raise ValidationError("Invalid phone number")
    if not payload.confirm_url:
        raise ValidationError("Confirm URL is required")

    result = await notify(db, notifier, Recipient(
        phone=payload.phone,
        client_name=payload.client_name,
        confirm_url=payload.confirm_url,
        kind=payload.kind,
        client_id=payload.client_id,
        manuscript_id=payload.manuscript_id,
    ))
    if not result.success:
        raise UpstreamFailure(result.error or "Alimtalk send failed")
    return {"success": True, "messageId": result.message_id}


@router.get("/logs")
async def list_logs(
    client_id: Optional[int] = None,
    manuscript_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(NotificationLog)
    if client_id is not None:
        stmt = stmt.where(NotificationLog.client_id == client_id)
    if manuscript_id is not None:
        stmt = stmt.where(NotificationLog.manuscript_id == manuscript_id)
    stmt = stmt.order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc()).limit(limit)
    rows = (await db.execute(stmt)).scalars().all()
    return {"data": [NotificationLogRead.model_validate(r) for r in rows]}
