"""RQ entrypoints for scheduled, manual and sweep assignment runs."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from uuid import UUID

from autoassign.core.logging import configure_logging, get_logger
from autoassign.db.session import async_session_maker
from autoassign.models.execution_history import EXECUTION_COMPLETED, EXECUTION_FAILED
from autoassign.services.agent_configurations import (
    get_assignment_settings,
    list_enabled_business_ids,
)
from autoassign.services.batch_matcher import (
    OUTCOME_ASSIGNED,
    OUTCOME_CONFLICT,
    OUTCOME_PROPOSED,
    BatchRunResult,
    match_task,
    reload_open_task,
    run_for_business,
)
from autoassign.services.execution_history import (
    JOB_GLOBAL_SWEEP,
    JOB_SCHEDULED,
    JOB_TASK,
    finish_execution,
    start_execution,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

    from autoassign.models.execution_history import ExecutionRecord

logger = get_logger(__name__)
# Same meaning as a batch run's processed_count: assignments plus proposals.
_COMMITTED_OUTCOMES = frozenset({OUTCOME_ASSIGNED, OUTCOME_PROPOSED})


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def execute_business_run(
    business_id: UUID,
    *,
    job_name: str,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> tuple[ExecutionRecord, BatchRunResult | None]:
    """Run the batch matcher for one business inside an execution record.

    Exceptions stop here: they are logged and stored on the record as a
    failed run. History and matching use separate sessions so a rollback in
    the batch never discards the history row.
    """
    factory = session_factory or async_session_maker
    async with factory() as history_session:
        record = await start_execution(
            history_session,
            job_name=job_name,
            business_id=business_id,
        )
        try:
            async with factory() as session:
                result = await run_for_business(session, business_id)
        except Exception as exc:
            logger.exception(
                "assignment.run.failed",
                extra={"business_id": str(business_id), "job_name": job_name},
            )
            await finish_execution(
                history_session,
                record,
                status=EXECUTION_FAILED,
                error=_error_text(exc),
            )
            await history_session.refresh(record)
            return record, None

        await finish_execution(
            history_session,
            record,
            status=EXECUTION_COMPLETED,
            target_count=result.total_tasks,
            processed_count=result.assigned_count,
            failed_count=result.failed_count,
            details=result.as_details(),
        )
        await history_session.refresh(record)
        return record, result


async def execute_task_match(
    business_id: UUID,
    task_id: UUID,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> tuple[ExecutionRecord, str | None]:
    """Match a single task, recorded under its own execution row."""
    factory = session_factory or async_session_maker
    async with factory() as history_session:
        record = await start_execution(
            history_session,
            job_name=JOB_TASK,
            business_id=business_id,
            details={"task_id": str(task_id)},
        )
        try:
            async with factory() as session:
                task = await reload_open_task(session, task_id)
                if task is None:
                    outcome = OUTCOME_CONFLICT
                else:
                    assignment_settings = await get_assignment_settings(session, business_id)
                    outcome = await match_task(session, task, assignment_settings)
        except Exception as exc:
            logger.exception(
                "assignment.task_run.failed",
                extra={"business_id": str(business_id), "task_id": str(task_id)},
            )
            await finish_execution(
                history_session,
                record,
                status=EXECUTION_FAILED,
                target_count=1,
                failed_count=1,
                error=_error_text(exc),
            )
            await history_session.refresh(record)
            return record, None

        await finish_execution(
            history_session,
            record,
            status=EXECUTION_COMPLETED,
            target_count=1,
            processed_count=1 if outcome in _COMMITTED_OUTCOMES else 0,
            details={"outcome": outcome},
        )
        await history_session.refresh(record)
        return record, outcome


async def execute_global_sweep(
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> ExecutionRecord:
    """Run every enabled business once; per-business failures land in the details."""
    factory = session_factory or async_session_maker
    async with factory() as history_session:
        record = await start_execution(history_session, job_name=JOB_GLOBAL_SWEEP)
        try:
            async with factory() as session:
                business_ids = await list_enabled_business_ids(session)
        except Exception as exc:
            logger.exception("assignment.sweep.list_failed")
            await finish_execution(
                history_session,
                record,
                status=EXECUTION_FAILED,
                error=_error_text(exc),
            )
            await history_session.refresh(record)
            return record

        processed = 0
        assigned = 0
        failures: dict[str, str] = {}
        for business_id in business_ids:
            try:
                async with factory() as session:
                    result = await run_for_business(session, business_id)
            except Exception as exc:
                failures[str(business_id)] = _error_text(exc)
                logger.exception(
                    "assignment.sweep.business_failed",
                    extra={"business_id": str(business_id)},
                )
                continue
            processed += 1
            assigned += result.assigned_count

        await finish_execution(
            history_session,
            record,
            status=EXECUTION_COMPLETED,
            target_count=len(business_ids),
            processed_count=processed,
            failed_count=len(failures),
            details={"assigned_count": assigned, "failures": failures},
        )
        await history_session.refresh(record)
        return record


def run_business_assignment_job(business_id: str) -> None:
    """rq-scheduler entrypoint for one business timer fire."""
    configure_logging()
    asyncio.run(execute_business_run(UUID(business_id), job_name=JOB_SCHEDULED))


def run_global_sweep_job() -> None:
    """rq-scheduler entrypoint for the fallback sweep."""
    configure_logging()
    asyncio.run(execute_global_sweep())
