"""Staff profile model holding skills, location and live workload."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from autoassign.core.time import utcnow
from autoassign.models.tenancy import TenantScoped

RUNTIME_ANNOTATION_TYPES = (datetime,)


class StaffProfile(TenantScoped, table=True):
    """Assignable worker belonging to a business."""

    __tablename__ = "staff_profiles"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID | None = Field(default=None, index=True)
    name: str
    role: str = Field(default="staff", index=True)
    # skill name -> {"level": "expert", "years_experience": 4}
    skills: dict[str, dict[str, Any]] = Field(default_factory=dict, sa_column=Column(JSON))
    latitude: float | None = None
    longitude: float | None = None
    current_workload: int = Field(default=0, ge=0)
    max_weekly_hours: float | None = None
    current_weekly_hours: float = Field(default=0.0)
    is_active: bool = Field(default=True, index=True)
    external_ids: dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
