"""Base model for rows owned by a single business (tenant)."""

from __future__ import annotations

from uuid import UUID

from sqlmodel import Field

from autoassign.models.base import QueryModel


class TenantScoped(QueryModel, table=False):
    """Adds the owning `business_id` column shared by tenant-scoped tables."""

    business_id: UUID = Field(foreign_key="businesses.id", index=True)
