"""Execution history rows for scheduled, manual and sweep assignment runs."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from autoassign.core.time import utcnow
from autoassign.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

EXECUTION_STARTED = "started"
EXECUTION_COMPLETED = "completed"
EXECUTION_FAILED = "failed"


class ExecutionRecord(QueryModel, table=True):
    """One run of an assignment job, created at start and finished exactly once."""

    __tablename__ = "execution_history"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_name: str = Field(index=True)
    # Null for runs that span every business, such as the global sweep.
    business_id: UUID | None = Field(default=None, foreign_key="businesses.id", index=True)
    started_at: datetime = Field(default_factory=utcnow, index=True)
    ended_at: datetime | None = None
    duration_seconds: float | None = None
    status: str = Field(default=EXECUTION_STARTED, index=True)
    target_count: int = Field(default=0)
    processed_count: int = Field(default=0)
    failed_count: int = Field(default=0)
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    error: str | None = None
