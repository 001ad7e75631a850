"""Limit/offset helpers shared by list endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from autoassign.db.queryset import QuerySet

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT")

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def clamp_limit(limit: int | None) -> int:
    if limit is None or limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


async def fetch_page(
    session: AsyncSession,
    queryset: QuerySet[ModelT],
    *,
    limit: int | None,
    offset: int,
) -> list[ModelT]:
    """Apply limit/offset to a queryset and return the rows of that page."""
    return await queryset.offset(max(offset, 0)).limit(clamp_limit(limit)).all(session)
