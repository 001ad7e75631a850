"""Tenant configuration provider for the auto-assignment agent."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import redis
from fastapi import HTTPException, status
from sqlmodel import col

from autoassign.core.logging import get_logger
from autoassign.core.time import utcnow
from autoassign.models.agent_configurations import (
    AGENT_TYPE_AUTO_ASSIGNMENT,
    DEFAULT_WEIGHTS,
    AgentConfiguration,
)
from autoassign.models.businesses import (
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_TRIALING,
    Business,
)

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from autoassign.schemas.agent_configurations import AgentConfigurationUpdate

logger = get_logger(__name__)

FEATURE_AUTO_ASSIGNMENT = "auto-assignment"
# Feature key stored on the business for paying (non-trial) subscriptions.
_FEATURE_FLAGS: dict[str, str] = {FEATURE_AUTO_ASSIGNMENT: "agent_auto_assignment"}
_FEATURE_AGENT_TYPES: dict[str, str] = {FEATURE_AUTO_ASSIGNMENT: AGENT_TYPE_AUTO_ASSIGNMENT}
_ENTITLED_SUBSCRIPTIONS = frozenset({SUBSCRIPTION_ACTIVE, SUBSCRIPTION_TRIALING})


def _stored_weights(raw: object) -> dict[str, float]:
    if isinstance(raw, Mapping) and raw:
        return dict(raw)
    return dict(DEFAULT_WEIGHTS)


@dataclass(frozen=True)
class AssignmentSettings:
    """Effective settings for one business; defaults when never configured."""

    requires_approval: bool = True
    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    skill_priorities: tuple[str, ...] = ()
    respect_max_workload: bool = True
    max_tasks_per_worker: int = 10
    auto_assign_to_roles: tuple[str, ...] = ()
    assignment_frequency_minutes: int = 5

    @classmethod
    def from_configuration(cls, config: AgentConfiguration) -> AssignmentSettings:
        return cls(
            requires_approval=config.requires_approval,
            weights=_stored_weights(config.weights),
            skill_priorities=tuple(config.skill_priorities or ()),
            respect_max_workload=config.respect_max_workload,
            max_tasks_per_worker=config.max_tasks_per_worker,
            auto_assign_to_roles=tuple(config.auto_assign_to_roles or ()),
            assignment_frequency_minutes=config.assignment_frequency_minutes,
        )


DEFAULT_ASSIGNMENT_SETTINGS = AssignmentSettings()


async def get_agent_configuration(
    session: AsyncSession,
    business_id: UUID,
    agent_type: str = AGENT_TYPE_AUTO_ASSIGNMENT,
) -> AgentConfiguration | None:
    return await AgentConfiguration.objects.filter_by(
        business_id=business_id,
        agent_type=agent_type,
    ).first(session)


async def require_agent_configuration(
    session: AsyncSession,
    business_id: UUID,
    agent_type: str = AGENT_TYPE_AUTO_ASSIGNMENT,
) -> AgentConfiguration:
    """Return the stored configuration or raise 404 when it was never created."""
    config = await get_agent_configuration(session, business_id, agent_type)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Agent configuration not found.",
        )
    return config


async def get_assignment_settings(
    session: AsyncSession,
    business_id: UUID,
) -> AssignmentSettings:
    config = await get_agent_configuration(session, business_id)
    if config is None:
        return DEFAULT_ASSIGNMENT_SETTINGS
    return AssignmentSettings.from_configuration(config)


def business_has_feature(business: Business, feature: str) -> bool:
    """Subscription entitlement: trials get every feature, active plans need the flag."""
    if business.is_deleted:
        return False
    if business.subscription_status not in _ENTITLED_SUBSCRIPTIONS:
        return False
    if business.subscription_status == SUBSCRIPTION_TRIALING:
        return True
    flag = _FEATURE_FLAGS.get(feature, feature)
    return flag in (business.enabled_features or [])


async def is_feature_enabled(
    session: AsyncSession,
    business_id: UUID,
    feature: str = FEATURE_AUTO_ASSIGNMENT,
) -> bool:
    """True when the business is entitled to the feature and has it switched on."""
    business = await Business.objects.by_id(business_id).first(session)
    if business is None or not business_has_feature(business, feature):
        return False
    agent_type = _FEATURE_AGENT_TYPES.get(feature)
    if agent_type is None:
        return True
    config = await get_agent_configuration(session, business_id, agent_type)
    return config is not None and config.is_enabled


async def list_enabled_configurations(session: AsyncSession) -> list[AgentConfiguration]:
    return await (
        AgentConfiguration.objects.filter_by(
            agent_type=AGENT_TYPE_AUTO_ASSIGNMENT,
            is_enabled=True,
        )
        .order_by(col(AgentConfiguration.created_at).asc())
        .all(session)
    )


async def list_enabled_business_ids(session: AsyncSession) -> list[UUID]:
    return [config.business_id for config in await list_enabled_configurations(session)]


async def _reconcile_schedule(session: AsyncSession, business_id: UUID) -> None:
    # Imported lazily: the scheduler imports this module to read configurations.
    from autoassign.services.scheduling.scheduler import reconcile_business_schedule

    try:
        await reconcile_business_schedule(session, business_id)
    except redis.RedisError as exc:
        # The next startup or global reconcile repairs the timer.
        logger.warning(
            "assignment.schedule.reconcile_failed",
            extra={"business_id": str(business_id), "error": str(exc)},
        )


async def enable_agent(session: AsyncSession, business_id: UUID) -> AgentConfiguration:
    """Create the configuration with defaults, or switch an existing one on."""
    business = await Business.objects.by_id(business_id).first(session)
    if business is None or business.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found.")
    if not business_has_feature(business, FEATURE_AUTO_ASSIGNMENT):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Business subscription does not include auto-assignment.",
        )

    config = await get_agent_configuration(session, business_id)
    if config is None:
        config = AgentConfiguration(business_id=business_id, is_enabled=True)
    else:
        config.is_enabled = True
        config.updated_at = utcnow()
    session.add(config)
    await session.commit()
    await session.refresh(config)
    logger.info("assignment.config.enabled", extra={"business_id": str(business_id)})
    await _reconcile_schedule(session, business_id)
    return config


async def disable_agent(session: AsyncSession, business_id: UUID) -> AgentConfiguration:
    config = await require_agent_configuration(session, business_id)
    config.is_enabled = False
    config.updated_at = utcnow()
    session.add(config)
    await session.commit()
    await session.refresh(config)
    logger.info("assignment.config.disabled", extra={"business_id": str(business_id)})
    await _reconcile_schedule(session, business_id)
    return config


async def update_agent_configuration(
    session: AsyncSession,
    business_id: UUID,
    payload: AgentConfigurationUpdate,
) -> AgentConfiguration:
    """Apply a partial update and re-register the business timer."""
    config = await require_agent_configuration(session, business_id)
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "weights" in updates:
        # Validate the merged set so a partial payload cannot zero every weight.
        merged = {**DEFAULT_WEIGHTS, **(config.weights or {}), **updates["weights"]}
        if any(value < 0 for value in merged.values()) or sum(merged.values()) <= 0:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Weights must be non-negative with a positive total.",
            )
        updates["weights"] = merged
    for key, value in updates.items():
        setattr(config, key, value)
    config.updated_at = utcnow()
    session.add(config)
    await session.commit()
    await session.refresh(config)
    logger.info(
        "assignment.config.updated",
        extra={"business_id": str(business_id), "fields": sorted(updates)},
    )
    await _reconcile_schedule(session, business_id)
    return config
