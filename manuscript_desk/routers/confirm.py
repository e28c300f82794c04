"""Public confirm endpoints. The token in the path is the only credential."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import ValidationError
from ..schemas import ConfirmAction, PublicManuscriptRead
from ..services import lifecycle

router = APIRouter(prefix="/api/confirm", tags=["confirm"])


@router.get("/{token}")
async def confirm_page(token: str, db: AsyncSession = Depends(get_db)):
    manuscript, group = await lifecycle.confirm_view(db, token)
    return {
        "data": PublicManuscriptRead.model_validate(manuscript),
        "manuscripts": [PublicManuscriptRead.model_validate(m) for m in group],
    }


@router.post("/{token}")
async def confirm_action(token: str, payload: ConfirmAction, db: AsyncSession = Depends(get_db)):
    # unknown links are a 404 whatever the body says
    await lifecycle.get_by_token(db, token)
    if payload.action == "approve":
        rows = await lifecycle.approve_by_token(db, token, payload.manuscript_id)
        message = "Approved successfully"
    elif payload.action == "revision":
        rows = await lifecycle.request_revision(db, token, payload.revision_request, payload.manuscript_id)
        message = "Revision request submitted"
    else:
        raise ValidationError("Invalid action")
    return {
        "data": [PublicManuscriptRead.model_validate(m) for m in rows],
        "message": message,
        "count": len(rows),
    }
