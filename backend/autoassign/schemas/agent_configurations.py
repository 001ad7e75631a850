"""Schemas for reading and updating the auto-assignment configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)

WEIGHT_KEYS = ("skill_match", "availability", "proximity", "workload")


class ScoringWeights(SQLModel):
    """Relative factor weights; normalised by their sum when scoring."""

    skill_match: float = 0.4
    availability: float = 0.3
    proximity: float = 0.1
    workload: float = 0.2

    @field_validator("skill_match", "availability", "proximity", "workload")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            msg = "weights must not be negative"
            raise ValueError(msg)
        return value

    def ensure_positive_total(self) -> ScoringWeights:
        if self.skill_match + self.availability + self.proximity + self.workload <= 0:
            msg = "at least one weight must be positive"
            raise ValueError(msg)
        return self


class NotificationSettings(SQLModel):
    email_notifications: bool = False
    manager_emails: list[str] = []
    notify_on_assignment: bool = True
    notify_on_rejection: bool = True


class AgentConfigurationUpdate(SQLModel):
    """Partial update; omitted fields keep their stored values."""

    is_enabled: bool | None = None
    requires_approval: bool | None = None
    weights: ScoringWeights | None = None
    skill_priorities: list[str] | None = None
    assignment_frequency_minutes: int | None = Field(default=None, ge=1, le=1440)
    respect_max_workload: bool | None = None
    max_tasks_per_worker: int | None = Field(default=None, ge=1)
    auto_assign_to_roles: list[str] | None = None
    notification_settings: NotificationSettings | None = None

    @field_validator("weights")
    @classmethod
    def _weights_total(cls, value: ScoringWeights | None) -> ScoringWeights | None:
        if value is None:
            return value
        return value.ensure_positive_total()


class AgentConfigurationRead(SQLModel):
    """Stored configuration returned by read endpoints."""

    id: UUID
    business_id: UUID
    agent_type: str
    is_enabled: bool
    requires_approval: bool
    weights: dict[str, float]
    skill_priorities: list[str] = []
    assignment_frequency_minutes: int
    respect_max_workload: bool
    max_tasks_per_worker: int
    auto_assign_to_roles: list[str] = []
    notification_settings: dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
