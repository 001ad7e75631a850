"""Reusable FastAPI dependencies for the assignment API."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import Depends, HTTPException, status

from autoassign.db.session import async_session_maker, get_session
from autoassign.models.businesses import Business

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

SESSION_DEP = Depends(get_session)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for runs that manage their own sessions (history + batch)."""
    return async_session_maker


SESSION_FACTORY_DEP = Depends(get_session_factory)


async def require_business(
    business_id: UUID,
    session: AsyncSession = SESSION_DEP,
) -> Business:
    """Load a live business from the path or raise 404."""
    business = await Business.objects.by_id(business_id).first(session)
    if business is None or business.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found.")
    return business


BUSINESS_DEP = Depends(require_business)
