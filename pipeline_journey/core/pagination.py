"""
Pagination utilities for the Pipeline Journey API.
Provides consistent pagination across all list endpoints.
"""
from typing import TypeVar, List
from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession

T = TypeVar("T")


def create_paginated_response(
    items: List[T],
    total: int,
    page: int,
    limit: int
) -> dict:
    """
    Create a paginated response dictionary.

    Args:
        items: List of items for current page
        total: Total count of all items
        page: Current page number
        limit: Items per page

    Returns:
        Dictionary with pagination metadata
    """
    pages = (total + limit - 1) // limit if limit > 0 else 0

    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": pages,
        "has_next": page < pages,
        "has_prev": page > 1
    }


async def paginate_query(
    session: AsyncSession,
    query,
    page: int = 1,
    limit: int = 20
) -> dict:
    """
    Execute a paginated query.

    Args:
        session: Database session
        query: Ordered SQLModel select query
        page: Page number (1-indexed)
        limit: Items per page

    Returns:
        Paginated response dictionary
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total_result = await session.exec(count_query)
    total = total_result.one()

    offset = (page - 1) * limit
    result = await session.exec(query.offset(offset).limit(limit))
    items = result.all()

    return create_paginated_response(items, total, page, limit)
