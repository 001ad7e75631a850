"""Minimal tenant record consulted by the feature-enabled check."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from autoassign.core.time import utcnow
from autoassign.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_TRIALING = "trialing"
SUBSCRIPTION_PAST_DUE = "past_due"
SUBSCRIPTION_CANCELED = "canceled"


class Business(QueryModel, table=True):
    """Tenant with a subscription state and a set of enabled feature keys."""

    __tablename__ = "businesses"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    subscription_status: str = Field(default=SUBSCRIPTION_ACTIVE, index=True)
    enabled_features: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_deleted: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
