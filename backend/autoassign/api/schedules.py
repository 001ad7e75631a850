"""Configuration, schedule and execution-history endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter

from autoassign.api.deps import BUSINESS_DEP, SESSION_DEP
from autoassign.db.pagination import fetch_page
from autoassign.schemas.agent_configurations import (
    AgentConfigurationRead,
    AgentConfigurationUpdate,
)
from autoassign.schemas.assignments import ScheduleReconcileResponse
from autoassign.schemas.execution_history import ExecutionRecordRead
from autoassign.services.agent_configurations import (
    disable_agent,
    enable_agent,
    require_agent_configuration,
    update_agent_configuration,
)
from autoassign.services.execution_history import executions_queryset
from autoassign.services.scheduling.scheduler import reconcile_business_schedule

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from autoassign.models.agent_configurations import AgentConfiguration
    from autoassign.models.businesses import Business

router = APIRouter(
    prefix="/businesses/{business_id}/auto-assignment",
    tags=["auto-assignment"],
)
history_router = APIRouter(prefix="/auto-assignment", tags=["execution-history"])


def _config_read(config: AgentConfiguration) -> AgentConfigurationRead:
    return AgentConfigurationRead.model_validate(config, from_attributes=True)


@router.get("/configuration", response_model=AgentConfigurationRead)
async def get_configuration(
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> AgentConfigurationRead:
    """Return the stored configuration; 404 when it was never created."""
    return _config_read(await require_agent_configuration(session, business.id))


@router.patch("/configuration", response_model=AgentConfigurationRead)
async def patch_configuration(
    payload: AgentConfigurationUpdate,
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> AgentConfigurationRead:
    return _config_read(await update_agent_configuration(session, business.id, payload))


@router.post("/configuration/enable", response_model=AgentConfigurationRead)
async def enable_configuration(
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> AgentConfigurationRead:
    return _config_read(await enable_agent(session, business.id))


@router.post("/configuration/disable", response_model=AgentConfigurationRead)
async def disable_configuration(
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> AgentConfigurationRead:
    return _config_read(await disable_agent(session, business.id))


@router.post("/schedule/reconcile", response_model=ScheduleReconcileResponse)
async def reconcile_schedule(
    business: Business = BUSINESS_DEP,
    session: AsyncSession = SESSION_DEP,
) -> ScheduleReconcileResponse:
    """Re-register (or remove) this business's timer from its configuration."""
    frequency = await reconcile_business_schedule(session, business.id)
    if frequency is None:
        return ScheduleReconcileResponse(
            message="No timer registered for this business.",
            scheduled=False,
        )
    return ScheduleReconcileResponse(
        message=f"Timer registered every {frequency} minutes.",
        scheduled=True,
        frequency_minutes=frequency,
    )


@history_router.get("/executions", response_model=list[ExecutionRecordRead])
async def list_executions(
    session: AsyncSession = SESSION_DEP,
    job_name: str | None = None,
    business_id: UUID | None = None,
    status: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ExecutionRecordRead]:
    """Query execution history, newest first."""
    queryset = executions_queryset(
        job_name=job_name,
        business_id=business_id,
        status=status,
        since=since,
        until=until,
    )
    records = await fetch_page(session, queryset, limit=limit, offset=offset)
    return [ExecutionRecordRead.model_validate(r, from_attributes=True) for r in records]
