from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_notifier, get_rewriter
from ..errors import NotFound, ValidationError
from ..models import Client
from ..schemas import CustomGenerateRequest, CustomSendRequest, DraftRead, RewriteRequest
from ..services.dispatch import BulkDispatcher
from ..services.notifications import NotificationGateway
from ..services.rewrite import RewriteGateway
from .manuscripts import dispatch_payload

router = APIRouter(prefix="/api", tags=["admin", "custom"])


@router.post("/rewrite")
async def rewrite(payload: RewriteRequest, rewriter: RewriteGateway = Depends(get_rewriter)):
    if not payload.title or not payload.content:
        raise ValidationError("Title and content are required")
    revision = payload.revision_request if payload.mode == "revision" else None
    if payload.mode == "revision" and not (revision or "").strip():
        raise ValidationError("Revision request content required")
    draft = await rewriter.rewrite(payload.title, payload.content, revision)
    return DraftRead(title=draft.title, content=draft.content)


@router.post("/custom-generate")
async def custom_generate(
    payload: CustomGenerateRequest,
    db: AsyncSession = Depends(get_db),
    rewriter: RewriteGateway = Depends(get_rewriter),
):
    if not (payload.topic or "").strip() or (payload.client_id is None and not payload.client):
        raise ValidationError("Client and topic are required")
    client = payload.client
    if payload.client_id is not None:
        client = await db.get(Client, payload.client_id)
        if not client:
            raise NotFound("Client not found")
    draft = await rewriter.generate(client, payload.topic.strip())
    return DraftRead(title=draft.title, content=draft.content)


@router.post("/custom-send", status_code=201)
async def custom_send(
    payload: CustomSendRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
):
    result = await BulkDispatcher(db, notifier).send_custom(
        payload.client_id, payload.title, payload.content, payload.topic,
    )
    body = dispatch_payload(result)
    body["confirmLink"] = body["confirmLinks"][0]
    return body
