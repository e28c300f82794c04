# services/stats.py
import math
from typing import Any, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_desk.models import Manuscript, ManuscriptStatus

MAX_PAGE_SIZE = 100


async def status_counts(db: AsyncSession) -> dict[str, int]:
    """Manuscript totals per status, every status present (0 when empty)."""
    rows = (
        await db.execute(select(Manuscript.status, func.count(Manuscript.id)).group_by(Manuscript.status))
    ).all()
    stats = {s.value: 0 for s in ManuscriptStatus}
    for status, count in rows:
        key = status.value if isinstance(status, ManuscriptStatus) else str(status)
        stats[key] = int(count)
    return {"total": sum(stats.values()), **stats}


def page_window(page: int, limit: int) -> tuple[int, int]:
    page = max(1, int(page or 1))
    limit = min(MAX_PAGE_SIZE, max(1, int(limit or 20)))
    return page, limit


async def paginate(
    db: AsyncSession,
    stmt: Select,
    page: int,
    limit: int,
    *,
    options: Sequence[Any] = (),
) -> tuple[list[Any], dict[str, int]]:
    """Run ``stmt`` for one page and return ``(rows, pagination)``.

    Loader ``options`` apply to the page query only, not the count.
    """
    page, limit = page_window(page, limit)
    total = await db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    page_stmt = stmt.options(*options) if options else stmt
    rows = (await db.execute(page_stmt.offset((page - 1) * limit).limit(limit))).scalars().all()
    return list(rows), {
        "page": page,
        "limit": limit,
        "total": int(total),
        "totalPages": math.ceil(total / limit) if total else 0,
    }
