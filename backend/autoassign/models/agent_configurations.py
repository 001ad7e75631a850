"""Per-business auto-assignment agent configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field

from autoassign.core.time import utcnow
from autoassign.models.tenancy import TenantScoped

RUNTIME_ANNOTATION_TYPES = (datetime,)

AGENT_TYPE_AUTO_ASSIGNMENT = "auto_assignment"

DEFAULT_WEIGHTS: dict[str, float] = {
    "skill_match": 0.4,
    "availability": 0.3,
    "proximity": 0.1,
    "workload": 0.2,
}
DEFAULT_NOTIFICATION_SETTINGS: dict[str, Any] = {
    "email_notifications": False,
    "manager_emails": [],
    "notify_on_assignment": True,
    "notify_on_rejection": True,
}


def _default_weights() -> dict[str, float]:
    return dict(DEFAULT_WEIGHTS)


def _default_notification_settings() -> dict[str, Any]:
    return dict(DEFAULT_NOTIFICATION_SETTINGS)


class AgentConfiguration(TenantScoped, table=True):
    """Tunable settings for one agent type within one business."""

    __tablename__ = "agent_configurations"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint(
            "business_id",
            "agent_type",
            name="uq_agent_configurations_business_agent_type",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    agent_type: str = Field(default=AGENT_TYPE_AUTO_ASSIGNMENT, index=True)
    is_enabled: bool = Field(default=True, index=True)
    requires_approval: bool = Field(default=True)
    weights: dict[str, float] = Field(default_factory=_default_weights, sa_column=Column(JSON))
    skill_priorities: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    assignment_frequency_minutes: int = Field(default=5, ge=1)
    respect_max_workload: bool = Field(default=True)
    max_tasks_per_worker: int = Field(default=10)
    auto_assign_to_roles: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    notification_settings: dict[str, Any] = Field(
        default_factory=_default_notification_settings,
        sa_column=Column(JSON),
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
