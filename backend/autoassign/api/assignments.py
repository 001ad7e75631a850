"""Operator endpoints for running the matcher and resolving proposals."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from autoassign.api.deps import BUSINESS_DEP, SESSION_DEP, SESSION_FACTORY_DEP
from autoassign.models.tasks import STATUS_UNASSIGNED, Task
from autoassign.schemas.assignments import (
    BatchRunResponse,
    ManualAssignPayload,
    OperatorActionResponse,
    RejectAssignmentPayload,
)
from autoassign.schemas.tasks import TaskRead, TaskStatus
from autoassign.services import assignment_state
from autoassign.services.agent_configurations import is_feature_enabled
from autoassign.services.assignment_repository import list_pending_tasks, list_tasks
from autoassign.services.batch_matcher import OUTCOME_ASSIGNED, OUTCOME_PROPOSED
from autoassign.services.execution_history import JOB_MANUAL
from autoassign.services.scheduling.jobs import execute_business_run, execute_task_match

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

    from autoassign.models.businesses import Business

router = APIRouter(
    prefix="/businesses/{business_id}/auto-assignment",
    tags=["auto-assignment"],
)

_OUTCOME_MESSAGES = {
    OUTCOME_ASSIGNED: "Task assigned.",
    OUTCOME_PROPOSED: "Assignment proposed and awaiting approval.",
    "unresolved": "No suitable worker found.",
    "conflict": "Task changed before it could be assigned.",
}


def _task_read(task: Task) -> TaskRead:
    return TaskRead.model_validate(task, from_attributes=True)


@router.post("/run", response_model=BatchRunResponse)
async def trigger_batch_now(
    business: Business = BUSINESS_DEP,
    session_factory: async_sessionmaker[AsyncSession] = SESSION_FACTORY_DEP,
) -> BatchRunResponse:
    """Run the batch matcher for this business immediately."""
    record, result = await execute_business_run(
        business.id,
        job_name=JOB_MANUAL,
        session_factory=session_factory,
    )
    if result is None:
        return BatchRunResponse(
            success=False,
            message=f"Assignment run failed: {record.error}",
            execution_id=record.id,
        )
    message = (
        "Auto-assignment is not enabled for this business."
        if result.skipped
        else f"Processed {result.total_tasks} tasks, assigned {result.assigned_count}."
    )
    return BatchRunResponse(
        success=not result.skipped,
        message=message,
        execution_id=record.id,
        total_tasks=result.total_tasks,
        assigned_count=result.assigned_count,
        failed_count=result.failed_count,
        task_ids=result.task_ids,
        unresolved_task_ids=result.unresolved_task_ids,
        conflicted_task_ids=result.conflicted_task_ids,
    )


@router.get("/pending", response_model=list[TaskRead])
async def list_pending_assignments(
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> list[TaskRead]:
    return [_task_read(task) for task in await list_pending_tasks(session, business.id)]


@router.get("/tasks", response_model=list[TaskRead])
async def list_business_tasks(
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> list[TaskRead]:
    """Tasks for the business, optionally narrowed to one status."""
    tasks = await list_tasks(session, business.id, task_status)
    return [_task_read(task) for task in tasks]


@router.post("/tasks/{task_id}/auto-assign", response_model=OperatorActionResponse)
async def auto_assign_task(
    task_id: UUID,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
    session_factory: async_sessionmaker[AsyncSession] = SESSION_FACTORY_DEP,
) -> OperatorActionResponse:
    """Score and assign (or propose) a single task right away."""
    task = await Task.objects.by_id(task_id).first(session)
    if task is None or task.is_deleted or task.business_id != business.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
    if task.status != STATUS_UNASSIGNED or task.pending_worker_id is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Task is not awaiting assignment.",
        )
    if not await is_feature_enabled(session, business.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Auto-assignment is not enabled for this business.",
        )

    record, outcome = await execute_task_match(
        business.id,
        task_id,
        session_factory=session_factory,
    )
    if outcome is None:
        return OperatorActionResponse(
            success=False,
            message=f"Assignment failed: {record.error}",
        )
    refreshed = await Task.objects.by_id(task_id).populate_existing().first(session)
    return OperatorActionResponse(
        success=outcome in (OUTCOME_ASSIGNED, OUTCOME_PROPOSED),
        message=_OUTCOME_MESSAGES.get(outcome, outcome),
        task=_task_read(refreshed) if refreshed is not None else None,
    )


@router.post("/tasks/{task_id}/approve", response_model=OperatorActionResponse)
async def approve_assignment(
    task_id: UUID,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OperatorActionResponse:
    task = await assignment_state.approve_pending(session, task_id, business_id=business.id)
    return OperatorActionResponse(
        success=True,
        message="Assignment approved.",
        task=_task_read(task),
    )


@router.post("/tasks/{task_id}/reject", response_model=OperatorActionResponse)
async def reject_assignment(
    task_id: UUID,
    payload: RejectAssignmentPayload,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OperatorActionResponse:
    task = await assignment_state.reject_pending(
        session,
        task_id,
        payload.reason,
        business_id=business.id,
    )
    return OperatorActionResponse(
        success=True,
        message="Assignment rejected.",
        task=_task_read(task),
    )


@router.post("/tasks/{task_id}/assign", response_model=OperatorActionResponse)
async def assign_task_manually(
    task_id: UUID,
    payload: ManualAssignPayload,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OperatorActionResponse:
    task = await assignment_state.assign_manually(
        session,
        task_id,
        payload.worker_id,
        business_id=business.id,
    )
    return OperatorActionResponse(
        success=True,
        message="Task assigned manually.",
        task=_task_read(task),
    )


@router.post("/tasks/{task_id}/start", response_model=OperatorActionResponse)
async def start_task(
    task_id: UUID,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OperatorActionResponse:
    task = await assignment_state.start_task(session, task_id, business_id=business.id)
    return OperatorActionResponse(success=True, message="Task started.", task=_task_read(task))


@router.post("/tasks/{task_id}/complete", response_model=OperatorActionResponse)
async def complete_task(
    task_id: UUID,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OperatorActionResponse:
    task = await assignment_state.complete_task(session, task_id, business_id=business.id)
    return OperatorActionResponse(success=True, message="Task completed.", task=_task_read(task))


@router.post("/tasks/{task_id}/cancel", response_model=OperatorActionResponse)
async def cancel_task(
    task_id: UUID,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OperatorActionResponse:
    task = await assignment_state.cancel_task(session, task_id, business_id=business.id)
    return OperatorActionResponse(success=True, message="Task cancelled.", task=_task_read(task))
