from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import NotFound
from ..models import Template
from ..schemas import TemplateCreate, TemplateRead, TemplateUpdate
from ..services.stats import paginate

router = APIRouter(prefix="/api/templates", tags=["admin", "templates"])


async def _get_template(db: AsyncSession, template_id: int) -> Template:
    template = await db.get(Template, template_id)
    if not template or not template.is_active:
        raise NotFound("Template not found")
    return template


@router.get("")
async def list_templates(
    search: str = "",
    business_type: str = "",
    month: Optional[int] = Query(None, ge=1, le=12),
    week: Optional[int] = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Template).where(Template.is_active.is_(True))
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(Template.title.ilike(like), Template.topic.ilike(like)))
    if business_type:
        stmt = stmt.where(Template.business_type == business_type)
    if month is not None:
        stmt = stmt.where(Template.month == month)
    if week is not None:
        # whole-month templates (no week) apply to every week
        stmt = stmt.where(or_(Template.week == week, Template.week.is_(None)))
    stmt = stmt.order_by(Template.approve_count.desc(), Template.send_count.desc(), Template.id.asc())

    rows, pagination = await paginate(db, stmt, page, limit)
    return {"data": [TemplateRead.model_validate(t) for t in rows], "pagination": pagination}


@router.post("", status_code=201)
async def create_template(payload: TemplateCreate, db: AsyncSession = Depends(get_db)):
    template = Template(**payload.model_dump(), send_count=0, approve_count=0, is_active=True)
    db.add(template)
    await db.commit()
    return {"data": TemplateRead.model_validate(template)}


@router.get("/{template_id}")
async def get_template(template_id: int, db: AsyncSession = Depends(get_db)):
    return {"data": TemplateRead.model_validate(await _get_template(db, template_id))}


@router.put("/{template_id}")
async def update_template(template_id: int, payload: TemplateUpdate, db: AsyncSession = Depends(get_db)):
    template = await _get_template(db, template_id)
    changes = payload.model_dump(exclude_unset=True)
    for key, value in changes.items():
        # week may be cleared (NULL = whole month); other fields may not
        if value is None and key != "week" and key != "topic":
            continue
        setattr(template, key, value)
    await db.commit()
    await db.refresh(template)
    return {"data": TemplateRead.model_validate(template)}


@router.delete("/{template_id}")
async def delete_template(template_id: int, db: AsyncSession = Depends(get_db)):
    template = await _get_template(db, template_id)
    template.is_active = False
    await db.commit()
    return {"message": "Template deleted successfully"}
