# ruff: noqa: INP001
"""Configuration provider tests: defaults, entitlement and schedule reconciliation."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

import pytest
import redis
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from autoassign.models.agent_configurations import DEFAULT_WEIGHTS
from autoassign.models.businesses import (
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_CANCELED,
    SUBSCRIPTION_PAST_DUE,
    SUBSCRIPTION_TRIALING,
    Business,
)
from autoassign.schemas.agent_configurations import AgentConfigurationUpdate
from autoassign.services.agent_configurations import (
    DEFAULT_ASSIGNMENT_SETTINGS,
    FEATURE_AUTO_ASSIGNMENT,
    business_has_feature,
    disable_agent,
    enable_agent,
    get_assignment_settings,
    is_feature_enabled,
    update_agent_configuration,
)
from autoassign.services.scheduling import scheduler as scheduler_module
from autoassign.services.scheduling.scheduler import AssignmentScheduler


class _RecordingScheduler(AssignmentScheduler):
    def __init__(self) -> None:
        super().__init__(scheduler=object())
        self.scheduled: dict[UUID, int] = {}
        self.removed: list[UUID] = []

    def schedule_business(self, business_id: UUID, frequency_minutes: int) -> str:
        self.scheduled[business_id] = frequency_minutes
        return self.job_id(business_id)

    def unschedule_business(self, business_id: UUID) -> bool:
        self.removed.append(business_id)
        return self.scheduled.pop(business_id, None) is not None


class _UnreachableScheduler(AssignmentScheduler):
    def schedule_business(self, business_id: UUID, frequency_minutes: int) -> str:
        raise redis.ConnectionError("redis is down")


async def _make_engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


async def _make_session(engine: AsyncEngine) -> AsyncSession:
    return AsyncSession(engine, expire_on_commit=False)


@pytest.fixture
def recording_scheduler(monkeypatch: pytest.MonkeyPatch) -> _RecordingScheduler:
    recorder = _RecordingScheduler()
    monkeypatch.setattr(scheduler_module, "get_assignment_scheduler", lambda: recorder)
    return recorder


async def _seed_business(session: AsyncSession, **kwargs: Any) -> Business:
    business = Business(id=uuid4(), name="Acme Facilities", **kwargs)
    session.add(business)
    await session.commit()
    return business


@pytest.mark.parametrize(
    ("subscription_status", "features", "is_deleted", "expected"),
    [
        (SUBSCRIPTION_TRIALING, [], False, True),
        (SUBSCRIPTION_ACTIVE, ["agent_auto_assignment"], False, True),
        (SUBSCRIPTION_ACTIVE, [], False, False),
        (SUBSCRIPTION_PAST_DUE, ["agent_auto_assignment"], False, False),
        (SUBSCRIPTION_CANCELED, ["agent_auto_assignment"], False, False),
        (SUBSCRIPTION_TRIALING, [], True, False),
    ],
)
def test_business_feature_entitlement(
    subscription_status: str,
    features: list[str],
    is_deleted: bool,
    expected: bool,
) -> None:
    business = Business(
        name="Acme Facilities",
        subscription_status=subscription_status,
        enabled_features=features,
        is_deleted=is_deleted,
    )

    assert business_has_feature(business, FEATURE_AUTO_ASSIGNMENT) is expected


@pytest.mark.asyncio
async def test_unconfigured_business_gets_default_settings() -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            business = await _seed_business(session, subscription_status=SUBSCRIPTION_TRIALING)

            assert await get_assignment_settings(session, business.id) == (
                DEFAULT_ASSIGNMENT_SETTINGS
            )
            assert DEFAULT_ASSIGNMENT_SETTINGS.weights == DEFAULT_WEIGHTS
            assert DEFAULT_ASSIGNMENT_SETTINGS.requires_approval is True
            assert not await is_feature_enabled(session, business.id)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_enable_agent_creates_configuration_and_registers_timer(
    recording_scheduler: _RecordingScheduler,
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            business = await _seed_business(session, subscription_status=SUBSCRIPTION_TRIALING)

            config = await enable_agent(session, business.id)

            assert config.is_enabled is True
            assert config.weights == DEFAULT_WEIGHTS
            assert config.assignment_frequency_minutes == 5
            assert await is_feature_enabled(session, business.id)
            assert recording_scheduler.scheduled == {business.id: 5}

            # Enabling twice keeps a single configuration row.
            again = await enable_agent(session, business.id)
            assert again.id == config.id
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_enable_agent_requires_entitlement(
    recording_scheduler: _RecordingScheduler,
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            business = await _seed_business(session, subscription_status=SUBSCRIPTION_ACTIVE)

            with pytest.raises(HTTPException) as forbidden:
                await enable_agent(session, business.id)
            with pytest.raises(HTTPException) as missing:
                await enable_agent(session, uuid4())

            assert forbidden.value.status_code == 403
            assert missing.value.status_code == 404
            assert recording_scheduler.scheduled == {}
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_disable_agent_removes_timer(recording_scheduler: _RecordingScheduler) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            business = await _seed_business(session, subscription_status=SUBSCRIPTION_TRIALING)
            await enable_agent(session, business.id)

            config = await disable_agent(session, business.id)

            assert config.is_enabled is False
            assert recording_scheduler.scheduled == {}
            assert recording_scheduler.removed == [business.id]
            assert not await is_feature_enabled(session, business.id)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_disable_agent_without_configuration_is_not_found(
    recording_scheduler: _RecordingScheduler,
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            business = await _seed_business(session)

            with pytest.raises(HTTPException) as exc:
                await disable_agent(session, business.id)

            assert exc.value.status_code == 404
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_update_applies_fields_and_reschedules(
    recording_scheduler: _RecordingScheduler,
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            business = await _seed_business(session, subscription_status=SUBSCRIPTION_TRIALING)
            await enable_agent(session, business.id)
            payload = AgentConfigurationUpdate.model_validate(
                {
                    "requires_approval": False,
                    "assignment_frequency_minutes": 15,
                    "skill_priorities": ["welding"],
                    "weights": {
                        "skill_match": 1,
                        "availability": 0,
                        "proximity": 0,
                        "workload": 0,
                    },
                },
            )

            config = await update_agent_configuration(session, business.id, payload)

            assert config.requires_approval is False
            assert config.assignment_frequency_minutes == 15
            assert config.skill_priorities == ["welding"]
            assert config.weights["skill_match"] == 1
            assert config.weights["availability"] == 0
            assert recording_scheduler.scheduled == {business.id: 15}
            effective = await get_assignment_settings(session, business.id)
            assert effective.requires_approval is False
            assert effective.skill_priorities == ("welding",)
    finally:
        await engine.dispose()


@pytest.mark.parametrize(
    "weights",
    [
        {"skill_match": -0.1, "availability": 1, "proximity": 0, "workload": 0},
        {"skill_match": 0, "availability": 0, "proximity": 0, "workload": 0},
    ],
)
def test_update_payload_rejects_invalid_weights(weights: dict[str, float]) -> None:
    with pytest.raises(ValidationError):
        AgentConfigurationUpdate.model_validate({"weights": weights})


@pytest.mark.asyncio
async def test_config_write_survives_unreachable_scheduler(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        scheduler_module,
        "get_assignment_scheduler",
        lambda: _UnreachableScheduler(scheduler=object()),
    )
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            business = await _seed_business(session, subscription_status=SUBSCRIPTION_TRIALING)

            config = await enable_agent(session, business.id)

            assert config.is_enabled is True
            assert await is_feature_enabled(session, business.id)
    finally:
        await engine.dispose()
