"""Dispatch of assignment-committed events to registered listeners."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

from autoassign.core.logging import get_logger
from autoassign.services.assignment_events.queue import (
    AssignmentCommitted,
    decode_assignment_task,
)
from autoassign.services.queue import QueuedTask

logger = get_logger(__name__)

AssignmentListener = Callable[[AssignmentCommitted], Awaitable[None] | None]

_LISTENERS: list[AssignmentListener] = []


def register_assignment_listener(listener: AssignmentListener) -> AssignmentListener:
    """Register a listener (sync or async); usable as a decorator."""
    if listener not in _LISTENERS:
        _LISTENERS.append(listener)
    return listener


def unregister_assignment_listener(listener: AssignmentListener) -> None:
    if listener in _LISTENERS:
        _LISTENERS.remove(listener)


def _log_assignment(event: AssignmentCommitted) -> None:
    """Default listener; the hook point for notification and sync adapters."""
    logger.info(
        "assignment.event.dispatch",
        extra={
            "task_id": str(event.task_id),
            "worker_id": str(event.worker_id),
            "business_id": str(event.business_id),
            "source": event.source,
        },
    )


register_assignment_listener(_log_assignment)


async def dispatch_assignment_event(event: AssignmentCommitted) -> None:
    for listener in list(_LISTENERS):
        result = listener(event)
        if inspect.isawaitable(result):
            await result


async def process_assignment_task(task: QueuedTask) -> None:
    """Decode and dispatch an assignment-committed task."""
    await dispatch_assignment_event(decode_assignment_task(task))


def drop_assignment_task(task: QueuedTask, exc: Exception) -> None:
    """Delivery is at-most-once; a failed event is logged and discarded."""
    logger.warning(
        "assignment.event.dropped",
        extra={
            "task_type": task.task_type,
            "attempt": task.attempts,
            "error": str(exc),
        },
    )
