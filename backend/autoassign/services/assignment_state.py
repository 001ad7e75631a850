"""Task assignment state machine.

Statuses move ``unassigned -> assigned -> in_progress -> completed`` with
``cancelled`` reachable from any non-terminal status. An unassigned task may
carry one pending proposal (``pending_worker_id``) awaiting operator approval.

Every transition is a single conditional UPDATE guarded on the state the
caller observed, so two concurrent runs can never both commit the same task.
Workload changes ride in the same transaction as the task update.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, status
from sqlalchemy import update
from sqlmodel import col

from autoassign.core.logging import get_logger
from autoassign.core.time import utcnow
from autoassign.models.staff_profiles import StaffProfile
from autoassign.models.task_rejections import TaskAssignmentRejection
from autoassign.models.tasks import (
    STATUS_ASSIGNED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_UNASSIGNED,
    TERMINAL_STATUSES,
    Task,
)
from autoassign.services.assignment_events import (
    SOURCE_APPROVAL,
    SOURCE_DIRECT,
    SOURCE_MANUAL,
    AssignmentCommitted,
    publish_assignment_committed,
)
from autoassign.services.workload import adjust_workload

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel.ext.asyncio.session import AsyncSession

    from autoassign.services.scoring import ScoredCandidate

logger = get_logger(__name__)


def _live_task_guard(task_id: UUID, status_value: str) -> tuple[ColumnElement[bool], ...]:
    return (
        col(Task.id) == task_id,
        col(Task.status) == status_value,
        col(Task.is_deleted).is_(False),
    )


def _open_task_guard(task_id: UUID) -> tuple[ColumnElement[bool], ...]:
    return (
        col(Task.id) == task_id,
        col(Task.status) == STATUS_UNASSIGNED,
        col(Task.is_deleted).is_(False),
        col(Task.pending_worker_id).is_(None),
        col(Task.assigned_worker_id).is_(None),
    )


async def _conditional_task_update(
    session: AsyncSession,
    guard: tuple[ColumnElement[bool], ...],
    values: dict[str, Any],
) -> bool:
    result = await session.exec(
        update(Task)
        .where(*guard)
        .values(**values, updated_at=utcnow())
        .execution_options(synchronize_session=False),
    )
    return bool(result.rowcount)


def _candidate_snapshot(ranked: list[ScoredCandidate]) -> list[str]:
    return [str(candidate.worker.id) for candidate in ranked]


def _publish(task: Task, worker_id: UUID, source: str) -> None:
    publish_assignment_committed(
        AssignmentCommitted(
            task_id=task.id,
            worker_id=worker_id,
            business_id=task.business_id,
            source=source,
            details={"external_ids": dict(task.external_ids or {})},
        ),
    )


async def _get_task(
    session: AsyncSession,
    task_id: UUID,
    business_id: UUID | None = None,
) -> Task:
    task = await Task.objects.by_id(task_id).populate_existing().first(session)
    if task is None or task.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
    if business_id is not None and task.business_id != business_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
    return task


def _require_pending(task: Task) -> UUID:
    if task.status in TERMINAL_STATUSES or task.pending_worker_id is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pending assignment for task.",
        )
    return task.pending_worker_id


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


async def propose_assignment(
    session: AsyncSession,
    task: Task,
    candidate: ScoredCandidate,
    ranked: list[ScoredCandidate],
) -> bool:
    """Attach a pending proposal; returns False when the task changed underneath."""
    task_id, worker_id = task.id, candidate.worker.id
    now = utcnow()
    committed = await _conditional_task_update(
        session,
        _open_task_guard(task_id),
        {
            "pending_worker_id": worker_id,
            "pending_proposed_at": now,
            "candidate_worker_ids": _candidate_snapshot(ranked),
            "assignment_metrics": candidate.score.as_metrics(),
        },
    )
    if not committed:
        await session.rollback()
        logger.info("assignment.propose.conflict", extra={"task_id": str(task_id)})
        return False
    await session.commit()
    logger.info(
        "assignment.proposed",
        extra={
            "task_id": str(task_id),
            "worker_id": str(worker_id),
            "score": round(candidate.score.final, 2),
        },
    )
    return True


async def direct_assign(
    session: AsyncSession,
    task: Task,
    candidate: ScoredCandidate,
    ranked: list[ScoredCandidate],
) -> bool:
    """Commit the candidate as assignee; returns False when the task changed underneath."""
    task_id, worker_id = task.id, candidate.worker.id
    committed = await _conditional_task_update(
        session,
        _open_task_guard(task_id),
        {
            "assigned_worker_id": worker_id,
            "status": STATUS_ASSIGNED,
            "assigned_at": utcnow(),
            "candidate_worker_ids": _candidate_snapshot(ranked),
            "assignment_metrics": candidate.score.as_metrics(),
        },
    )
    if not committed or not await adjust_workload(session, worker_id, 1):
        await session.rollback()
        logger.info("assignment.direct.conflict", extra={"task_id": str(task_id)})
        return False
    await session.commit()
    logger.info(
        "assignment.assigned",
        extra={
            "task_id": str(task.id),
            "worker_id": str(worker_id),
            "score": round(candidate.score.final, 2),
        },
    )
    _publish(task, worker_id, SOURCE_DIRECT)
    return True


async def approve_pending(
    session: AsyncSession,
    task_id: UUID,
    *,
    business_id: UUID | None = None,
) -> Task:
    """Commit the pending candidate as the assignee."""
    task = await _get_task(session, task_id, business_id)
    worker_id = _require_pending(task)
    committed = await _conditional_task_update(
        session,
        (
            col(Task.id) == task.id,
            col(Task.status) == STATUS_UNASSIGNED,
            col(Task.is_deleted).is_(False),
            col(Task.pending_worker_id) == worker_id,
            col(Task.assigned_worker_id).is_(None),
        ),
        {
            "assigned_worker_id": worker_id,
            "status": STATUS_ASSIGNED,
            "assigned_at": utcnow(),
            "pending_worker_id": None,
            "pending_proposed_at": None,
        },
    )
    if not committed or not await adjust_workload(session, worker_id, 1):
        await session.rollback()
        raise _conflict("Task changed while approving the assignment.")
    await session.commit()
    await session.refresh(task)
    logger.info(
        "assignment.approved",
        extra={"task_id": str(task.id), "worker_id": str(worker_id)},
    )
    _publish(task, worker_id, SOURCE_APPROVAL)
    return task


async def reject_pending(
    session: AsyncSession,
    task_id: UUID,
    reason: str = "",
    *,
    business_id: UUID | None = None,
) -> Task:
    """Drop the pending proposal and record it in the rejection history."""
    task = await _get_task(session, task_id, business_id)
    worker_id = _require_pending(task)
    proposed_at = task.pending_proposed_at
    cleared = await _conditional_task_update(
        session,
        (
            *_live_task_guard(task.id, STATUS_UNASSIGNED),
            col(Task.pending_worker_id) == worker_id,
        ),
        {"pending_worker_id": None, "pending_proposed_at": None},
    )
    if not cleared:
        await session.rollback()
        raise _conflict("Task changed while rejecting the assignment.")
    session.add(
        TaskAssignmentRejection(
            task_id=task.id,
            business_id=task.business_id,
            worker_id=worker_id,
            reason=reason,
            proposed_at=proposed_at,
            rejected_at=utcnow(),
        ),
    )
    await session.commit()
    await session.refresh(task)
    logger.info(
        "assignment.rejected",
        extra={"task_id": str(task.id), "worker_id": str(worker_id), "reason": reason},
    )
    return task


async def assign_manually(
    session: AsyncSession,
    task_id: UUID,
    worker_id: UUID,
    *,
    business_id: UUID | None = None,
) -> Task:
    """Operator override: assign a chosen worker, replacing any pending proposal."""
    task = await _get_task(session, task_id, business_id)
    if task.status != STATUS_UNASSIGNED or task.assigned_worker_id is not None:
        raise _conflict("Only unassigned tasks can be assigned manually.")
    worker = await StaffProfile.objects.by_id(worker_id).first(session)
    if worker is None or worker.business_id != task.business_id or not worker.is_active:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Worker is not an active member of this business.",
        )
    committed = await _conditional_task_update(
        session,
        (
            col(Task.id) == task.id,
            col(Task.status) == STATUS_UNASSIGNED,
            col(Task.is_deleted).is_(False),
            col(Task.assigned_worker_id).is_(None),
        ),
        {
            "assigned_worker_id": worker_id,
            "status": STATUS_ASSIGNED,
            "assigned_at": utcnow(),
            "pending_worker_id": None,
            "pending_proposed_at": None,
            "candidate_worker_ids": [str(worker_id)],
            "assignment_metrics": None,
        },
    )
    if not committed or not await adjust_workload(session, worker_id, 1):
        await session.rollback()
        raise _conflict("Task changed while assigning.")
    await session.commit()
    await session.refresh(task)
    logger.info(
        "assignment.manual",
        extra={"task_id": str(task.id), "worker_id": str(worker_id)},
    )
    _publish(task, worker_id, SOURCE_MANUAL)
    return task


async def start_task(
    session: AsyncSession,
    task_id: UUID,
    *,
    business_id: UUID | None = None,
) -> Task:
    task = await _get_task(session, task_id, business_id)
    if task.status != STATUS_ASSIGNED:
        raise _conflict(f"Cannot start a task in status {task.status!r}.")
    started = await _conditional_task_update(
        session,
        _live_task_guard(task.id, STATUS_ASSIGNED),
        {"status": STATUS_IN_PROGRESS, "started_at": utcnow()},
    )
    if not started:
        await session.rollback()
        raise _conflict("Task changed while starting.")
    await session.commit()
    await session.refresh(task)
    logger.info("assignment.task_started", extra={"task_id": str(task.id)})
    return task


async def complete_task(
    session: AsyncSession,
    task_id: UUID,
    *,
    business_id: UUID | None = None,
) -> Task:
    """Finish an in-progress task and release the worker's slot."""
    task = await _get_task(session, task_id, business_id)
    if task.status != STATUS_IN_PROGRESS:
        raise _conflict(f"Cannot complete a task in status {task.status!r}.")
    completed = await _conditional_task_update(
        session,
        _live_task_guard(task.id, STATUS_IN_PROGRESS),
        {"status": STATUS_COMPLETED, "completed_at": utcnow()},
    )
    if not completed:
        await session.rollback()
        raise _conflict("Task changed while completing.")
    if task.assigned_worker_id is not None:
        await adjust_workload(session, task.assigned_worker_id, -1)
    await session.commit()
    await session.refresh(task)
    logger.info("assignment.task_completed", extra={"task_id": str(task.id)})
    return task


async def cancel_task(
    session: AsyncSession,
    task_id: UUID,
    *,
    business_id: UUID | None = None,
) -> Task:
    """Cancel a non-terminal task; a held worker slot is released."""
    task = await _get_task(session, task_id, business_id)
    if task.status in TERMINAL_STATUSES:
        raise _conflict(f"Cannot cancel a task in status {task.status!r}.")
    prior_status = task.status
    cancelled = await _conditional_task_update(
        session,
        _live_task_guard(task.id, prior_status),
        {
            "status": STATUS_CANCELLED,
            "cancelled_at": utcnow(),
            "pending_worker_id": None,
            "pending_proposed_at": None,
        },
    )
    if not cancelled:
        await session.rollback()
        raise _conflict("Task changed while cancelling.")
    if prior_status in (STATUS_ASSIGNED, STATUS_IN_PROGRESS) and task.assigned_worker_id:
        await adjust_workload(session, task.assigned_worker_id, -1)
    await session.commit()
    await session.refresh(task)
    logger.info(
        "assignment.task_cancelled",
        extra={"task_id": str(task.id), "prior_status": prior_status},
    )
    return task
