from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import NotFound
from ..models import Client, ClientType
from ..schemas import ClientCreate, ClientRead, ClientUpdate
from ..services.stats import paginate

router = APIRouter(prefix="/api/clients", tags=["admin", "clients"])


async def _get_client(db: AsyncSession, client_id: int) -> Client:
    client = await db.get(Client, client_id)
    if not client:
        raise NotFound("Client not found")
    return client


@router.get("")
async def list_clients(
    search: str = "",
    business_type: str = "",
    is_active: Optional[bool] = None,
    client_type: Optional[ClientType] = None,
    manager: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Client)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(Client.name.ilike(like), Client.region.ilike(like)))
    if business_type:
        stmt = stmt.where(Client.business_type == business_type)
    if is_active is not None:
        stmt = stmt.where(Client.is_active.is_(is_active))
    if client_type is not None:
        stmt = stmt.where(Client.client_type == client_type)
    if manager:
        stmt = stmt.where(Client.manager == manager)
    stmt = stmt.order_by(Client.created_at.desc(), Client.id.desc())

    rows, pagination = await paginate(db, stmt, page, limit)
    return {"data": [ClientRead.model_validate(c) for c in rows], "pagination": pagination}


@router.post("", status_code=201)
async def create_client(payload: ClientCreate, db: AsyncSession = Depends(get_db)):
    data = payload.model_dump()
    # blank optional fields are stored as NULL
    for key in ("main_service", "differentiator", "contact", "memo", "manager"):
        data[key] = (data.get(key) or "").strip() or None
    client = Client(**data, is_active=True)
    db.add(client)
    await db.commit()
    return {"data": ClientRead.model_validate(client)}


@router.get("/{client_id}")
async def get_client(client_id: int, db: AsyncSession = Depends(get_db)):
    return {"data": ClientRead.model_validate(await _get_client(db, client_id))}


@router.put("/{client_id}")
async def update_client(client_id: int, payload: ClientUpdate, db: AsyncSession = Depends(get_db)):
    client = await _get_client(db, client_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if key in ("main_service", "differentiator", "contact", "memo", "manager"):
            value = (value or "").strip() or None
        if value is None and key in ("name", "region", "business_type", "client_type", "is_active"):
            continue
        setattr(client, key, value)
    await db.commit()
    await db.refresh(client)
    return {"data": ClientRead.model_validate(client)}


@router.delete("/{client_id}")
async def delete_client(client_id: int, db: AsyncSession = Depends(get_db)):
    # soft delete: manuscripts keep pointing at the client
    client = await _get_client(db, client_id)
    client.is_active = False
    await db.commit()
    return {"message": "Client deleted successfully"}
