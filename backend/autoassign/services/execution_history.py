"""Execution history recorder for assignment runs."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import update
from sqlmodel import col

from autoassign.core.logging import get_logger
from autoassign.core.time import utcnow
from autoassign.models.execution_history import (
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
    EXECUTION_STARTED,
    ExecutionRecord,
)

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from autoassign.db.queryset import QuerySet

logger = get_logger(__name__)

JOB_SCHEDULED = "auto_assignment.scheduled"
JOB_MANUAL = "auto_assignment.manual"
JOB_GLOBAL_SWEEP = "auto_assignment.global_sweep"
JOB_TASK = "auto_assignment.task"

FINISHED_STATUSES = frozenset({EXECUTION_COMPLETED, EXECUTION_FAILED})


async def start_execution(
    session: AsyncSession,
    *,
    job_name: str,
    business_id: UUID | None = None,
    details: dict[str, Any] | None = None,
) -> ExecutionRecord:
    """Persist a `started` row; committed immediately so it survives a crashed run."""
    record = ExecutionRecord(
        job_name=job_name,
        business_id=business_id,
        started_at=utcnow(),
        status=EXECUTION_STARTED,
        details=details,
    )
    session.add(record)
    await session.commit()
    await session.refresh(record)
    logger.info(
        "execution.started",
        extra={
            "execution_id": str(record.id),
            "job_name": job_name,
            "business_id": str(business_id) if business_id else None,
        },
    )
    return record


async def finish_execution(
    session: AsyncSession,
    record: ExecutionRecord,
    *,
    status: str,
    target_count: int = 0,
    processed_count: int = 0,
    failed_count: int = 0,
    details: dict[str, Any] | None = None,
    error: str | None = None,
) -> bool:
    """Close a started row exactly once.

    The update only matches rows still in `started`, so a second finish is a
    no-op and returns False.
    """
    if status not in FINISHED_STATUSES:
        raise ValueError(f"Unsupported execution status {status!r}")
    ended_at = utcnow()
    duration = max(0.0, (ended_at - record.started_at).total_seconds())
    values: dict[str, Any] = {
        "status": status,
        "ended_at": ended_at,
        "duration_seconds": duration,
        "target_count": target_count,
        "processed_count": processed_count,
        "failed_count": failed_count,
        "error": error,
    }
    if details is not None:
        values["details"] = {**(record.details or {}), **details}
    result = await session.exec(
        update(ExecutionRecord)
        .where(col(ExecutionRecord.id) == record.id)
        .where(col(ExecutionRecord.status) == EXECUTION_STARTED)
        .values(**values)
        .execution_options(synchronize_session=False),
    )
    await session.commit()
    finished = bool(result.rowcount)
    if not finished:
        logger.warning(
            "execution.finish_ignored",
            extra={"execution_id": str(record.id), "status": status},
        )
        return False
    log = logger.error if status == EXECUTION_FAILED else logger.info
    log(
        "execution.finished",
        extra={
            "execution_id": str(record.id),
            "job_name": record.job_name,
            "status": status,
            "target_count": target_count,
            "processed_count": processed_count,
            "failed_count": failed_count,
            "duration_seconds": round(duration, 3),
            "error": error,
        },
    )
    return True


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def executions_queryset(
    *,
    job_name: str | None = None,
    business_id: UUID | None = None,
    status: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> QuerySet[ExecutionRecord]:
    """Filtered history query, newest first."""
    criteria = []
    if job_name:
        criteria.append(col(ExecutionRecord.job_name) == job_name)
    if business_id is not None:
        criteria.append(col(ExecutionRecord.business_id) == business_id)
    if status:
        criteria.append(col(ExecutionRecord.status) == status)
    if since is not None:
        criteria.append(col(ExecutionRecord.started_at) >= _naive_utc(since))
    if until is not None:
        criteria.append(col(ExecutionRecord.started_at) <= _naive_utc(until))
    return ExecutionRecord.objects.filter(*criteria).order_by(
        col(ExecutionRecord.started_at).desc(),
    )
