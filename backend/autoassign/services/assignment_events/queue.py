"""Assignment-committed event envelope and queue persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from autoassign.core.config import settings
from autoassign.core.logging import get_logger
from autoassign.services.queue import QueuedTask, enqueue_task

logger = get_logger(__name__)
TASK_TYPE = "assignment_committed"

SOURCE_DIRECT = "direct"
SOURCE_APPROVAL = "approval"
SOURCE_MANUAL = "manual"


@dataclass(frozen=True)
class AssignmentCommitted:
    """A task was committed to a worker; consumed by sync and notification adapters."""

    task_id: UUID
    worker_id: UUID
    business_id: UUID
    source: str  # direct | approval | manual
    committed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    details: dict[str, Any] = field(default_factory=dict)


def _task_from_event(event: AssignmentCommitted) -> QueuedTask:
    return QueuedTask(
        task_type=TASK_TYPE,
        payload={
            "task_id": str(event.task_id),
            "worker_id": str(event.worker_id),
            "business_id": str(event.business_id),
            "source": event.source,
            "details": event.details,
        },
        created_at=event.committed_at,
    )


def decode_assignment_task(task: QueuedTask) -> AssignmentCommitted:
    """Decode a QueuedTask into an AssignmentCommitted event."""
    if task.task_type != TASK_TYPE:
        raise ValueError(f"Unexpected task_type={task.task_type!r}; expected {TASK_TYPE!r}")

    p: dict[str, Any] = task.payload
    return AssignmentCommitted(
        task_id=UUID(p["task_id"]),
        worker_id=UUID(p["worker_id"]),
        business_id=UUID(p["business_id"]),
        source=str(p["source"]),
        committed_at=task.created_at,
        details=p.get("details") or {},
    )


def publish_assignment_committed(event: AssignmentCommitted) -> bool:
    """Best-effort publish; a failure is logged and never undoes the assignment."""
    queued = enqueue_task(
        _task_from_event(event),
        settings.rq_queue_name,
        redis_url=settings.rq_redis_url,
    )
    if not queued:
        logger.warning(
            "assignment.event.publish_failed",
            extra={
                "task_id": str(event.task_id),
                "worker_id": str(event.worker_id),
                "business_id": str(event.business_id),
                "source": event.source,
            },
        )
    return queued
