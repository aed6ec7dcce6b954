"""
Pagination helpers shared by the list endpoints.
"""
from typing import List, Optional, Any
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select


def clamp_page(page: int, limit: int, max_limit: int = 100) -> tuple:
    """Page >= 1 and 1 <= limit <= max_limit"""
    return max(1, page or 1), max(1, min(max_limit, limit or 1))


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if total > 0 else 0


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    limit: int = 10,
    count_query: Optional[Select] = None
) -> dict:
    """
    Apply offset pagination to a SQLAlchemy query.

    Returns a dict with items, total, page, limit and total_pages.
    """
    page, limit = clamp_page(page, limit)

    if count_query is None:
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    items = result.scalars().all()

    return {
        "items": list(items),
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages(total, limit),
    }


def paginate_list(items: List[Any], page: int, limit: int) -> dict:
    """Same result shape for data already in memory"""
    page, limit = clamp_page(page, limit)
    total = len(items)
    return {
        "items": items[(page - 1) * limit: page * limit],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages(total, limit),
    }
