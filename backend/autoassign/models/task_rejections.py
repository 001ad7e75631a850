"""Append-only record of rejected assignment proposals."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from autoassign.core.time import utcnow
from autoassign.models.tenancy import TenantScoped

RUNTIME_ANNOTATION_TYPES = (datetime,)


class TaskAssignmentRejection(TenantScoped, table=True):
    """One operator rejection of a proposed worker for a task."""

    __tablename__ = "task_assignment_rejections"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    task_id: UUID = Field(foreign_key="tasks.id", index=True)
    worker_id: UUID = Field(foreign_key="staff_profiles.id", index=True)
    reason: str = Field(default="")
    proposed_at: datetime | None = None
    rejected_at: datetime = Field(default_factory=utcnow)
