"""Per-business assignment timers registered with rq-scheduler.

Each enabled business owns one interval job whose id is derived from the
business id. Re-registering cancels the job with that id first, so repeated
reconciles leave exactly one timer per business.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

from redis import Redis
from rq_scheduler import Scheduler  # type: ignore[import-untyped]

from autoassign.core.config import settings
from autoassign.core.logging import get_logger
from autoassign.services.agent_configurations import (
    get_agent_configuration,
    list_enabled_configurations,
)
from autoassign.services.scheduling import jobs

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


class AssignmentScheduler:
    """Thin registry over rq-scheduler keyed by deterministic job ids."""

    def __init__(self, scheduler: Any | None = None) -> None:
        self._scheduler = scheduler

    @property
    def scheduler(self) -> Any:
        if self._scheduler is None:
            connection = Redis.from_url(settings.rq_redis_url)
            self._scheduler = Scheduler(
                queue_name=settings.assignment_rq_queue_name,
                connection=connection,
            )
        return self._scheduler

    @staticmethod
    def job_id(business_id: UUID) -> str:
        return f"{settings.assignment_schedule_id_prefix}{business_id}"

    @staticmethod
    def business_id_from_job_id(job_id: str) -> UUID | None:
        prefix = settings.assignment_schedule_id_prefix
        if not job_id.startswith(prefix):
            return None
        try:
            return UUID(job_id[len(prefix) :])
        except ValueError:
            return None

    def _first_run_at(self) -> datetime:
        return datetime.now(tz=UTC) + timedelta(
            seconds=settings.assignment_schedule_start_delay_seconds,
        )

    def _cancel(self, job_id: str) -> bool:
        removed = False
        for job in self.scheduler.get_jobs():
            if job.id == job_id:
                self.scheduler.cancel(job)
                removed = True
        return removed

    def schedule_business(self, business_id: UUID, frequency_minutes: int) -> str:
        """Register (or replace) the recurring timer for one business."""
        job_id = self.job_id(business_id)
        self._cancel(job_id)
        interval_seconds = max(1, int(frequency_minutes)) * 60
        self.scheduler.schedule(
            self._first_run_at(),
            func=jobs.run_business_assignment_job,
            args=[str(business_id)],
            interval=interval_seconds,
            repeat=None,
            id=job_id,
            queue_name=settings.assignment_rq_queue_name,
        )
        logger.info(
            "assignment.schedule.registered",
            extra={
                "business_id": str(business_id),
                "job_id": job_id,
                "interval_seconds": interval_seconds,
            },
        )
        return job_id

    def unschedule_business(self, business_id: UUID) -> bool:
        """Remove the business timer; a missing timer is not an error."""
        removed = self._cancel(self.job_id(business_id))
        if removed:
            logger.info(
                "assignment.schedule.removed",
                extra={"business_id": str(business_id)},
            )
        return removed

    def scheduled_business_ids(self) -> set[UUID]:
        business_ids: set[UUID] = set()
        for job in self.scheduler.get_jobs():
            business_id = self.business_id_from_job_id(str(job.id))
            if business_id is not None:
                business_ids.add(business_id)
        return business_ids

    def ensure_global_sweep(self, interval_seconds: int | None = None) -> str:
        """Register the fallback sweep across every enabled business."""
        job_id = settings.assignment_global_sweep_schedule_id
        self._cancel(job_id)
        effective_interval_seconds = (
            settings.assignment_global_sweep_interval_seconds
            if interval_seconds is None
            else interval_seconds
        )
        self.scheduler.schedule(
            self._first_run_at(),
            func=jobs.run_global_sweep_job,
            interval=effective_interval_seconds,
            repeat=None,
            id=job_id,
            queue_name=settings.assignment_rq_queue_name,
        )
        return job_id


def get_assignment_scheduler() -> AssignmentScheduler:
    return AssignmentScheduler()


async def reconcile_business_schedule(
    session: AsyncSession,
    business_id: UUID,
    *,
    scheduler: AssignmentScheduler | None = None,
) -> int | None:
    """Align the business timer with its stored configuration.

    Returns the active frequency in minutes, or None when no timer remains.
    In-flight runs are untouched; only the next fire is affected.
    """
    if not settings.assignment_scheduler_enabled:
        logger.debug(
            "assignment.schedule.disabled",
            extra={"business_id": str(business_id)},
        )
        return None
    scheduler = scheduler or get_assignment_scheduler()
    config = await get_agent_configuration(session, business_id)
    if config is None or not config.is_enabled:
        scheduler.unschedule_business(business_id)
        return None
    scheduler.schedule_business(business_id, config.assignment_frequency_minutes)
    return config.assignment_frequency_minutes


async def reconcile_all_schedules(
    session: AsyncSession,
    *,
    scheduler: AssignmentScheduler | None = None,
) -> dict[str, int]:
    """Diff enabled configurations against registered timers and repair both sides."""
    if not settings.assignment_scheduler_enabled:
        return {"scheduled": 0, "removed": 0}
    scheduler = scheduler or get_assignment_scheduler()
    desired = {
        config.business_id: config.assignment_frequency_minutes
        for config in await list_enabled_configurations(session)
    }
    orphans = scheduler.scheduled_business_ids() - desired.keys()
    for business_id in orphans:
        scheduler.unschedule_business(business_id)
    for business_id, frequency in desired.items():
        scheduler.schedule_business(business_id, frequency)
    scheduler.ensure_global_sweep()
    logger.info(
        "assignment.schedule.reconciled",
        extra={"scheduled": len(desired), "removed": len(orphans)},
    )
    return {"scheduled": len(desired), "removed": len(orphans)}
