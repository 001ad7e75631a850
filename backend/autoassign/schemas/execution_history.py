"""Schemas for the execution history query API."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class ExecutionRecordRead(SQLModel):
    """Execution history payload returned by read endpoints."""

    id: UUID
    job_name: str
    business_id: UUID | None = None
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: float | None = None
    status: str
    target_count: int
    processed_count: int
    failed_count: int
    details: dict[str, Any] | None = None
    error: str | None = None
