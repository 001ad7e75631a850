"""Batch matching of a business's open tasks against its staff."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from autoassign.core.logging import get_logger
from autoassign.models.tasks import STATUS_UNASSIGNED, Task
from autoassign.services.agent_configurations import (
    FEATURE_AUTO_ASSIGNMENT,
    AssignmentSettings,
    get_assignment_settings,
    is_feature_enabled,
)
from autoassign.services.assignment_repository import (
    list_eligible_workers,
    list_rejected_worker_ids,
    list_unassigned_tasks,
)
from autoassign.services.assignment_state import direct_assign, propose_assignment
from autoassign.services.scoring import rank_candidates

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

OUTCOME_ASSIGNED = "assigned"
OUTCOME_PROPOSED = "proposed"
OUTCOME_UNRESOLVED = "unresolved"
OUTCOME_CONFLICT = "conflict"


@dataclass
class BatchRunResult:
    """Counts for one run; `assigned_count` includes proposals awaiting approval."""

    total_tasks: int = 0
    assigned_count: int = 0
    failed_count: int = 0
    task_ids: list[UUID] = field(default_factory=list)
    unresolved_task_ids: list[UUID] = field(default_factory=list)
    conflicted_task_ids: list[UUID] = field(default_factory=list)
    skipped: bool = False

    def as_details(self) -> dict[str, object]:
        return {
            "task_ids": [str(task_id) for task_id in self.task_ids],
            "unresolved_task_ids": [str(task_id) for task_id in self.unresolved_task_ids],
            "conflicted_task_ids": [str(task_id) for task_id in self.conflicted_task_ids],
            "skipped": self.skipped,
        }


async def match_task(
    session: AsyncSession,
    task: Task,
    assignment_settings: AssignmentSettings,
) -> str:
    """Score fresh workers for one task and drive the state machine.

    Returns one of the ``OUTCOME_*`` values.
    """
    task_id = task.id
    workers = await list_eligible_workers(
        session,
        task.business_id,
        assignment_settings.auto_assign_to_roles,
    )
    rejected = await list_rejected_worker_ids(session, task_id)
    workers = [worker for worker in workers if worker.id not in rejected]
    ranked = rank_candidates(task, workers, assignment_settings)
    if not ranked or ranked[0].score.final <= 0:
        logger.info(
            "assignment.batch.task_unresolved",
            extra={"task_id": str(task_id), "candidate_count": len(workers)},
        )
        return OUTCOME_UNRESOLVED

    best = ranked[0]
    if assignment_settings.requires_approval:
        committed = await propose_assignment(session, task, best, ranked)
        return OUTCOME_PROPOSED if committed else OUTCOME_CONFLICT
    committed = await direct_assign(session, task, best, ranked)
    return OUTCOME_ASSIGNED if committed else OUTCOME_CONFLICT


async def reload_open_task(session: AsyncSession, task_id: UUID) -> Task | None:
    task = await Task.objects.by_id(task_id).populate_existing().first(session)
    if (
        task is None
        or task.is_deleted
        or task.status != STATUS_UNASSIGNED
        or task.pending_worker_id is not None
        or task.assigned_worker_id is not None
    ):
        return None
    return task


async def run_for_business(session: AsyncSession, business_id: UUID) -> BatchRunResult:
    """Match every open task of a business, one task at a time.

    Tasks are processed sequentially so each one sees the workload committed
    for the previous one. Failures on a single task are logged and counted;
    a failure to list the tasks propagates and fails the whole run.
    """
    result = BatchRunResult()
    if not await is_feature_enabled(session, business_id, FEATURE_AUTO_ASSIGNMENT):
        logger.warning(
            "assignment.batch.feature_disabled",
            extra={"business_id": str(business_id)},
        )
        result.skipped = True
        return result

    assignment_settings = await get_assignment_settings(session, business_id)
    task_ids = [task.id for task in await list_unassigned_tasks(session, business_id)]
    result.total_tasks = len(task_ids)

    for task_id in task_ids:
        try:
            task = await reload_open_task(session, task_id)
            if task is None:
                result.conflicted_task_ids.append(task_id)
                continue
            outcome = await match_task(session, task, assignment_settings)
        except Exception as exc:
            await session.rollback()
            result.failed_count += 1
            logger.exception(
                "assignment.batch.task_failed",
                extra={
                    "business_id": str(business_id),
                    "task_id": str(task_id),
                    "error": str(exc),
                },
            )
            continue

        if outcome in (OUTCOME_ASSIGNED, OUTCOME_PROPOSED):
            result.assigned_count += 1
            result.task_ids.append(task_id)
        elif outcome == OUTCOME_CONFLICT:
            result.conflicted_task_ids.append(task_id)
        else:
            result.unresolved_task_ids.append(task_id)

    logger.info(
        "assignment.batch.complete",
        extra={
            "business_id": str(business_id),
            "total_tasks": result.total_tasks,
            "assigned_count": result.assigned_count,
            "failed_count": result.failed_count,
            "unresolved_count": len(result.unresolved_task_ids),
            "conflicted_count": len(result.conflicted_task_ids),
        },
    )
    return result
