"""Request and response payloads for operator assignment actions."""

from __future__ import annotations

from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

from autoassign.schemas.tasks import TaskRead

RUNTIME_ANNOTATION_TYPES = (UUID,)


class RejectAssignmentPayload(SQLModel):
    """Operator reason for rejecting a pending proposal."""

    reason: str = Field(default="", max_length=2000)


class ManualAssignPayload(SQLModel):
    """Worker chosen by an operator for a manual assignment."""

    worker_id: UUID


class OperatorActionResponse(SQLModel):
    """Uniform result envelope for operator-triggered actions."""

    success: bool = Field(examples=[True])
    message: str = Field(examples=["Assignment approved."])
    task: TaskRead | None = None


class BatchRunResponse(SQLModel):
    """Result counts of one batch matching run."""

    success: bool = True
    message: str = ""
    execution_id: UUID | None = None
    total_tasks: int = 0
    assigned_count: int = 0
    failed_count: int = 0
    task_ids: list[UUID] = []
    unresolved_task_ids: list[UUID] = []
    conflicted_task_ids: list[UUID] = []


class ScheduleReconcileResponse(SQLModel):
    """Timer state for one business after reconciling its schedule."""

    success: bool = True
    message: str = ""
    scheduled: bool
    frequency_minutes: int | None = None
