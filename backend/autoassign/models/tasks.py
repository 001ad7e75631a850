"""Task model with assignment state, pending proposal and lifecycle timestamps."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from autoassign.core.time import utcnow
from autoassign.models.tenancy import TenantScoped

RUNTIME_ANNOTATION_TYPES = (datetime,)

STATUS_UNASSIGNED = "unassigned"
STATUS_ASSIGNED = "assigned"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})

PRIORITY_RANK: dict[str, int] = {"urgent": 4, "high": 3, "medium": 2, "low": 1}


class Task(TenantScoped, table=True):
    """Business-scoped unit of work that the engine assigns to a staff member."""

    __tablename__ = "tasks"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    title: str
    description: str | None = None
    status: str = Field(default=STATUS_UNASSIGNED, index=True)
    priority: str = Field(default="medium", index=True)
    due_at: datetime | None = Field(default=None, index=True)
    required_skills: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    latitude: float | None = None
    longitude: float | None = None

    assigned_worker_id: UUID | None = Field(
        default=None,
        foreign_key="staff_profiles.id",
        index=True,
    )
    assigned_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    pending_worker_id: UUID | None = Field(
        default=None,
        foreign_key="staff_profiles.id",
        index=True,
    )
    pending_proposed_at: datetime | None = None
    candidate_worker_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    assignment_metrics: dict[str, float] | None = Field(default=None, sa_column=Column(JSON))

    external_ids: dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
