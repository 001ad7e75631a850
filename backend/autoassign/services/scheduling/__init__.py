"""Per-business assignment scheduling on rq-scheduler."""

from autoassign.services.scheduling.scheduler import (
    AssignmentScheduler,
    get_assignment_scheduler,
    reconcile_all_schedules,
    reconcile_business_schedule,
)

__all__ = [
    "AssignmentScheduler",
    "get_assignment_scheduler",
    "reconcile_all_schedules",
    "reconcile_business_schedule",
]
