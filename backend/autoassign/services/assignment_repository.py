"""Task and staff queries used by the matcher and the operator API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import case
from sqlmodel import col

from autoassign.models.staff_profiles import StaffProfile
from autoassign.models.task_rejections import TaskAssignmentRejection
from autoassign.models.tasks import PRIORITY_RANK, STATUS_UNASSIGNED, Task

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from sqlalchemy.sql.elements import Case
    from sqlmodel.ext.asyncio.session import AsyncSession


def _priority_rank() -> Case[int]:
    return case(PRIORITY_RANK, value=col(Task.priority), else_=0)


async def list_unassigned_tasks(session: AsyncSession, business_id: UUID) -> list[Task]:
    """Open tasks without a pending proposal, most urgent and earliest due first."""
    return await (
        Task.objects.filter(
            col(Task.business_id) == business_id,
            col(Task.status) == STATUS_UNASSIGNED,
            col(Task.is_deleted).is_(False),
            col(Task.pending_worker_id).is_(None),
            col(Task.assigned_worker_id).is_(None),
        )
        .order_by(
            _priority_rank().desc(),
            col(Task.due_at).asc().nulls_last(),
            col(Task.created_at).asc(),
        )
        .populate_existing()
        .all(session)
    )


async def list_pending_tasks(session: AsyncSession, business_id: UUID) -> list[Task]:
    return await (
        Task.objects.filter(
            col(Task.business_id) == business_id,
            col(Task.status) == STATUS_UNASSIGNED,
            col(Task.is_deleted).is_(False),
            col(Task.pending_worker_id).is_not(None),
        )
        .order_by(col(Task.pending_proposed_at).asc())
        .all(session)
    )


async def list_tasks(
    session: AsyncSession,
    business_id: UUID,
    status: str | None = None,
) -> list[Task]:
    """Non-deleted tasks for the business, optionally in one status, most urgent first."""
    queryset = Task.objects.filter(
        col(Task.business_id) == business_id,
        col(Task.is_deleted).is_(False),
    )
    if status is not None:
        queryset = queryset.filter(col(Task.status) == status)
    return await queryset.order_by(
        _priority_rank().desc(),
        col(Task.due_at).asc().nulls_last(),
        col(Task.created_at).asc(),
    ).all(session)


async def list_eligible_workers(
    session: AsyncSession,
    business_id: UUID,
    roles: Iterable[str] = (),
) -> list[StaffProfile]:
    """Active staff for the business, re-read from storage on every call."""
    queryset = StaffProfile.objects.filter(
        col(StaffProfile.business_id) == business_id,
        col(StaffProfile.is_active).is_(True),
    )
    role_filter = list(roles)
    if role_filter:
        queryset = queryset.filter(col(StaffProfile.role).in_(role_filter))
    return await (
        queryset.order_by(col(StaffProfile.created_at).asc(), col(StaffProfile.id).asc())
        .populate_existing()
        .all(session)
    )


async def list_rejected_worker_ids(session: AsyncSession, task_id: UUID) -> set[UUID]:
    rejections = await TaskAssignmentRejection.objects.filter_by(task_id=task_id).all(session)
    return {rejection.worker_id for rejection in rejections}
