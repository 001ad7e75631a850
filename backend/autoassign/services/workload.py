"""Atomic workload counters on staff profiles."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlmodel import col

from autoassign.core.logging import get_logger
from autoassign.core.time import utcnow
from autoassign.models.staff_profiles import StaffProfile

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


async def adjust_workload(session: AsyncSession, worker_id: UUID, delta: int) -> bool:
    """Add `delta` to a worker's workload in one statement.

    The update is skipped when it would take the counter below zero. Returns
    whether a row was changed. The caller owns the transaction.
    """
    if delta == 0:
        return True
    statement = (
        update(StaffProfile)
        .where(col(StaffProfile.id) == worker_id)
        .where(col(StaffProfile.current_workload) + delta >= 0)
        .values(
            current_workload=col(StaffProfile.current_workload) + delta,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(statement)
    changed = bool(result.rowcount)
    if not changed:
        logger.warning(
            "workload.adjust_skipped",
            extra={"worker_id": str(worker_id), "delta": delta},
        )
    return changed


async def increment_workload(session: AsyncSession, worker_id: UUID) -> bool:
    return await adjust_workload(session, worker_id, 1)


async def decrement_workload(session: AsyncSession, worker_id: UUID) -> bool:
    return await adjust_workload(session, worker_id, -1)
