"""Worker that drains the assignment event queue and dispatches by task type."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from autoassign.core.config import settings
from autoassign.core.logging import configure_logging, get_logger
from autoassign.services.assignment_events.dispatch import (
    drop_assignment_task,
    process_assignment_task,
)
from autoassign.services.assignment_events.queue import TASK_TYPE as ASSIGNMENT_TASK_TYPE
from autoassign.services.queue import QueuedTask, dequeue_task

logger = get_logger(__name__)
_WORKER_BLOCK_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class _TaskHandler:
    handler: Callable[[QueuedTask], Awaitable[None]]
    on_failure: Callable[[QueuedTask, Exception], None]


_TASK_HANDLERS: dict[str, _TaskHandler] = {
    ASSIGNMENT_TASK_TYPE: _TaskHandler(
        handler=process_assignment_task,
        on_failure=drop_assignment_task,
    ),
}


async def _handle(task: QueuedTask) -> bool:
    """Run the handler registered for the task type; False if unknown or failed."""
    registered = _TASK_HANDLERS.get(task.task_type)
    if registered is None:
        logger.warning(
            "queue.worker.task_unhandled",
            extra={"task_type": task.task_type, "queue_name": settings.rq_queue_name},
        )
        return False
    try:
        await registered.handler(task)
    except Exception as exc:
        logger.exception(
            "queue.worker.failed",
            extra={"task_type": task.task_type, "error": str(exc)},
        )
        registered.on_failure(task, exc)
        return False
    logger.info("queue.worker.success", extra={"task_type": task.task_type})
    return True


async def flush_queue(*, block: bool = False, block_timeout: float = 0) -> int:
    """Handle queued tasks until the queue is empty; returns the success count."""
    processed = 0
    while True:
        try:
            task = dequeue_task(
                settings.rq_queue_name,
                redis_url=settings.rq_redis_url,
                block=block,
                block_timeout=block_timeout,
            )
        except ValueError:
            # Malformed envelopes are logged by the queue layer and discarded.
            continue
        if task is None:
            break
        if await _handle(task):
            processed += 1
        if settings.rq_dispatch_throttle_seconds > 0:
            await asyncio.sleep(settings.rq_dispatch_throttle_seconds)

    if processed:
        logger.info("queue.worker.batch_complete", extra={"count": processed})
    return processed


async def _run_worker_loop() -> None:
    while True:
        try:
            await flush_queue(block=True, block_timeout=_WORKER_BLOCK_TIMEOUT_SECONDS)
        except Exception:
            logger.exception(
                "queue.worker.loop_failed",
                extra={"queue_name": settings.rq_queue_name},
            )
            await asyncio.sleep(1)


def run_worker() -> None:
    """RQ entrypoint for continuous assignment event processing."""
    configure_logging()
    logger.info(
        "queue.worker.started",
        extra={
            "queue_name": settings.rq_queue_name,
            "throttle_seconds": settings.rq_dispatch_throttle_seconds,
        },
    )
    try:
        asyncio.run(_run_worker_loop())
    finally:
        logger.info("queue.worker.stopped", extra={"queue_name": settings.rq_queue_name})
