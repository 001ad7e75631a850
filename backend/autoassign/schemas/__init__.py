"""Public schema exports shared across API route modules."""

from autoassign.schemas.agent_configurations import (
    AgentConfigurationRead,
    AgentConfigurationUpdate,
    NotificationSettings,
    ScoringWeights,
)
from autoassign.schemas.assignments import (
    BatchRunResponse,
    ManualAssignPayload,
    OperatorActionResponse,
    RejectAssignmentPayload,
    ScheduleReconcileResponse,
)
from autoassign.schemas.execution_history import ExecutionRecordRead
from autoassign.schemas.health import HealthStatusResponse, ReadinessResponse
from autoassign.schemas.tasks import TaskRead

__all__ = [
    "AgentConfigurationRead",
    "AgentConfigurationUpdate",
    "BatchRunResponse",
    "ExecutionRecordRead",
    "HealthStatusResponse",
    "ManualAssignPayload",
    "NotificationSettings",
    "OperatorActionResponse",
    "ReadinessResponse",
    "RejectAssignmentPayload",
    "ScheduleReconcileResponse",
    "ScoringWeights",
    "TaskRead",
]
