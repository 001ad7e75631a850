"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from autoassign.models.agent_configurations import AgentConfiguration
from autoassign.models.businesses import Business
from autoassign.models.execution_history import ExecutionRecord
from autoassign.models.staff_profiles import StaffProfile
from autoassign.models.task_rejections import TaskAssignmentRejection
from autoassign.models.tasks import Task

__all__ = [
    "AgentConfiguration",
    "Business",
    "ExecutionRecord",
    "StaffProfile",
    "Task",
    "TaskAssignmentRejection",
]
