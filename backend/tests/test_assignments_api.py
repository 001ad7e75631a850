# ruff: noqa: INP001
"""Integration tests for the operator assignment and history endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from autoassign.api.assignments import router as assignments_router
from autoassign.api.deps import get_session_factory
from autoassign.api.schedules import history_router, router as schedules_router
from autoassign.core.error_handling import install_error_handling
from autoassign.db.session import get_session
from autoassign.models.agent_configurations import AgentConfiguration
from autoassign.models.businesses import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_TRIALING, Business
from autoassign.models.staff_profiles import StaffProfile
from autoassign.models.tasks import STATUS_ASSIGNED, Task
from autoassign.services import assignment_state
from autoassign.services.scheduling import scheduler as scheduler_module
from autoassign.services.scheduling.scheduler import AssignmentScheduler

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


class _NullScheduler(AssignmentScheduler):
    def schedule_business(self, business_id: UUID, frequency_minutes: int) -> str:
        return self.job_id(business_id)

    def unschedule_business(self, business_id: UUID) -> bool:
        return False


async def _make_engine(path: Path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


def _build_test_app(session_maker: async_sessionmaker[AsyncSession]) -> FastAPI:
    app = FastAPI()
    install_error_handling(app)
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(assignments_router)
    api_v1.include_router(schedules_router)
    api_v1.include_router(history_router)
    app.include_router(api_v1)

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_maker
    return app


@pytest.fixture(autouse=True)
def _isolate_side_effects(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(assignment_state, "publish_assignment_committed", lambda event: True)
    monkeypatch.setattr(
        scheduler_module,
        "get_assignment_scheduler",
        lambda: _NullScheduler(scheduler=object()),
    )


async def _seed(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    subscription_status: str = SUBSCRIPTION_TRIALING,
    requires_approval: bool = True,
) -> tuple[UUID, UUID, UUID]:
    async with session_maker() as session:
        business = Business(
            id=uuid4(),
            name="Acme Facilities",
            subscription_status=subscription_status,
        )
        worker = StaffProfile(
            id=uuid4(),
            business_id=business.id,
            name="Sam",
            skills={"welding": {"level": "expert"}},
        )
        task = Task(
            id=uuid4(),
            business_id=business.id,
            title="Weld the gate",
            required_skills=["welding"],
        )
        session.add(business)
        session.add(worker)
        session.add(task)
        session.add(
            AgentConfiguration(business_id=business.id, requires_approval=requires_approval),
        )
        await session.commit()
        return business.id, worker.id, task.id


@pytest.mark.asyncio
async def test_run_then_approve_pending_proposal(tmp_path: Path) -> None:
    engine = await _make_engine(tmp_path / "api.db")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    app = _build_test_app(session_maker)
    business_id, worker_id, task_id = await _seed(session_maker)
    base = f"/api/v1/businesses/{business_id}/auto-assignment"

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            run = await client.post(f"{base}/run")
            assert run.status_code == 200
            body = run.json()
            assert body["success"] is True
            assert body["total_tasks"] == 1
            assert body["assigned_count"] == 1
            assert body["task_ids"] == [str(task_id)]
            assert body["execution_id"]

            pending = await client.get(f"{base}/pending")
            assert pending.status_code == 200
            assert [item["pending_worker_id"] for item in pending.json()] == [str(worker_id)]

            approve = await client.post(f"{base}/tasks/{task_id}/approve")
            assert approve.status_code == 200
            assert approve.json()["task"]["status"] == "assigned"
            assert approve.json()["task"]["assigned_worker_id"] == str(worker_id)

            again = await client.post(f"{base}/tasks/{task_id}/approve")
            assert again.status_code == 404
            assert again.json()["detail"] == "No pending assignment for task."
            assert again.json()["request_id"]

            history = await client.get(
                "/api/v1/auto-assignment/executions",
                params={"business_id": str(business_id)},
            )
            assert history.status_code == 200
            assert [item["status"] for item in history.json()] == ["completed"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_reject_then_manual_assign_and_lifecycle(tmp_path: Path) -> None:
    engine = await _make_engine(tmp_path / "api.db")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    app = _build_test_app(session_maker)
    business_id, worker_id, task_id = await _seed(session_maker)
    base = f"/api/v1/businesses/{business_id}/auto-assignment"

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            proposed = await client.post(f"{base}/tasks/{task_id}/auto-assign")
            assert proposed.status_code == 200
            assert proposed.json()["message"] == "Assignment proposed and awaiting approval."

            rejected = await client.post(
                f"{base}/tasks/{task_id}/reject",
                json={"reason": "needs a certified welder"},
            )
            assert rejected.status_code == 200
            assert rejected.json()["task"]["pending_worker_id"] is None

            assigned = await client.post(
                f"{base}/tasks/{task_id}/assign",
                json={"worker_id": str(worker_id)},
            )
            assert assigned.status_code == 200
            assert assigned.json()["task"]["status"] == "assigned"

            for action, expected in (("start", "in_progress"), ("complete", "completed")):
                response = await client.post(f"{base}/tasks/{task_id}/{action}")
                assert response.status_code == 200
                assert response.json()["task"]["status"] == expected

            cancel = await client.post(f"{base}/tasks/{task_id}/cancel")
            assert cancel.status_code == 409
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_single_task_auto_assign_requires_enabled_feature(tmp_path: Path) -> None:
    engine = await _make_engine(tmp_path / "api.db")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    app = _build_test_app(session_maker)
    business_id, _, task_id = await _seed(session_maker, subscription_status=SUBSCRIPTION_ACTIVE)
    base = f"/api/v1/businesses/{business_id}/auto-assignment"

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            forbidden = await client.post(f"{base}/tasks/{task_id}/auto-assign")
            assert forbidden.status_code == 403

            skipped = await client.post(f"{base}/run")
            assert skipped.status_code == 200
            assert skipped.json()["success"] is False

            missing = await client.post(f"{base}/tasks/{uuid4()}/auto-assign")
            assert missing.status_code == 404

            unknown_business = await client.post(
                f"/api/v1/businesses/{uuid4()}/auto-assignment/run",
            )
            assert unknown_business.status_code == 404
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_configuration_endpoints(tmp_path: Path) -> None:
    engine = await _make_engine(tmp_path / "api.db")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    app = _build_test_app(session_maker)
    business_id, _, _ = await _seed(session_maker)
    base = f"/api/v1/businesses/{business_id}/auto-assignment"

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            current = await client.get(f"{base}/configuration")
            assert current.status_code == 200
            assert current.json()["requires_approval"] is True

            invalid = await client.patch(
                f"{base}/configuration",
                json={
                    "weights": {
                        "skill_match": 0,
                        "availability": 0,
                        "proximity": 0,
                        "workload": 0,
                    },
                },
            )
            assert invalid.status_code == 422

            updated = await client.patch(
                f"{base}/configuration",
                json={"assignment_frequency_minutes": 30, "requires_approval": False},
            )
            assert updated.status_code == 200
            assert updated.json()["assignment_frequency_minutes"] == 30
            assert updated.json()["requires_approval"] is False

            disabled = await client.post(f"{base}/configuration/disable")
            assert disabled.status_code == 200
            assert disabled.json()["is_enabled"] is False

            reconcile = await client.post(f"{base}/schedule/reconcile")
            assert reconcile.status_code == 200
            assert reconcile.json()["scheduled"] is False

            enabled = await client.post(f"{base}/configuration/enable")
            assert enabled.status_code == 200
            assert enabled.json()["is_enabled"] is True
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_list_tasks_filters_by_status_and_hides_deleted(tmp_path: Path) -> None:
    engine = await _make_engine(tmp_path / "api.db")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    app = _build_test_app(session_maker)
    business_id, worker_id, open_task_id = await _seed(session_maker)
    assigned_id = uuid4()
    async with session_maker() as session:
        session.add(
            Task(
                id=assigned_id,
                business_id=business_id,
                title="Fix the boiler",
                priority="urgent",
                status=STATUS_ASSIGNED,
                assigned_worker_id=worker_id,
            ),
        )
        session.add(Task(business_id=business_id, title="Old duplicate", is_deleted=True))
        session.add(Task(business_id=uuid4(), title="Someone else's task"))
        await session.commit()
    base = f"/api/v1/businesses/{business_id}/auto-assignment"

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            everything = await client.get(f"{base}/tasks")
            assert everything.status_code == 200
            assert [item["id"] for item in everything.json()] == [
                str(assigned_id),
                str(open_task_id),
            ]

            assigned = await client.get(f"{base}/tasks", params={"status": "assigned"})
            assert assigned.status_code == 200
            assert [item["id"] for item in assigned.json()] == [str(assigned_id)]

            invalid = await client.get(f"{base}/tasks", params={"status": "archived"})
            assert invalid.status_code == 422
            assert invalid.json()["request_id"]
    finally:
        await engine.dispose()
