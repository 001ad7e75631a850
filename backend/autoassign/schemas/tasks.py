"""Schemas for task payloads returned by the assignment API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)

TaskStatus = Literal["unassigned", "assigned", "in_progress", "completed", "cancelled"]


class TaskRead(SQLModel):
    """Task payload including assignment and pending-proposal state."""

    id: UUID
    business_id: UUID
    title: str
    description: str | None = None
    status: str
    priority: str
    due_at: datetime | None = None
    required_skills: list[str] = []
    latitude: float | None = None
    longitude: float | None = None
    assigned_worker_id: UUID | None = None
    assigned_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    pending_worker_id: UUID | None = None
    pending_proposed_at: datetime | None = None
    candidate_worker_ids: list[str] = []
    assignment_metrics: dict[str, float] | None = None
    created_at: datetime
    updated_at: datetime
