# ruff: noqa: INP001
"""State machine tests for proposals, approvals, manual overrides and lifecycle moves."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel, col
from sqlmodel.ext.asyncio.session import AsyncSession

from autoassign.models.businesses import Business
from autoassign.models.staff_profiles import StaffProfile
from autoassign.models.task_rejections import TaskAssignmentRejection
from autoassign.models.tasks import (
    STATUS_ASSIGNED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_UNASSIGNED,
    Task,
)
from autoassign.services import assignment_state
from autoassign.services.agent_configurations import AssignmentSettings
from autoassign.services.assignment_events import (
    SOURCE_APPROVAL,
    SOURCE_DIRECT,
    SOURCE_MANUAL,
    AssignmentCommitted,
)
from autoassign.services.scoring import rank_candidates

if TYPE_CHECKING:
    from pathlib import Path


async def _make_engine(url: str = "sqlite+aiosqlite:///:memory:") -> AsyncEngine:
    engine = create_async_engine(url)
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


async def _make_session(engine: AsyncEngine) -> AsyncSession:
    return AsyncSession(engine, expire_on_commit=False)


@pytest.fixture
def published(monkeypatch: pytest.MonkeyPatch) -> list[AssignmentCommitted]:
    events: list[AssignmentCommitted] = []

    def _capture(event: AssignmentCommitted) -> bool:
        events.append(event)
        return True

    monkeypatch.setattr(assignment_state, "publish_assignment_committed", _capture)
    return events


async def _seed(
    session: AsyncSession,
    *,
    task_status: str = STATUS_UNASSIGNED,
    assigned: bool = False,
    workload: int = 0,
) -> tuple[Task, StaffProfile]:
    business = Business(id=uuid4(), name="Acme Facilities")
    worker = StaffProfile(
        id=uuid4(),
        business_id=business.id,
        name="Sam",
        skills={"welding": {"level": "expert"}},
        current_workload=workload,
    )
    task = Task(
        id=uuid4(),
        business_id=business.id,
        title="Weld the gate",
        status=task_status,
        required_skills=["welding"],
        assigned_worker_id=worker.id if assigned else None,
        external_ids={"crm": "job-42"},
    )
    session.add(business)
    session.add(worker)
    session.add(task)
    await session.commit()
    return task, worker


async def _workload(session: AsyncSession, worker_id: UUID) -> int:
    worker = await StaffProfile.objects.by_id(worker_id).populate_existing().first(session)
    assert worker is not None
    return worker.current_workload


async def _reload(session: AsyncSession, task_id: UUID) -> Task:
    task = await Task.objects.by_id(task_id).populate_existing().first(session)
    assert task is not None
    return task


@pytest.mark.asyncio
async def test_propose_keeps_task_unassigned_and_workload_untouched(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session)
            ranked = rank_candidates(task, [worker], AssignmentSettings())

            assert await assignment_state.propose_assignment(session, task, ranked[0], ranked)

            stored = await _reload(session, task.id)
            assert stored.status == STATUS_UNASSIGNED
            assert stored.pending_worker_id == worker.id
            assert stored.pending_proposed_at is not None
            assert stored.candidate_worker_ids == [str(worker.id)]
            assert stored.assignment_metrics is not None
            assert stored.assignment_metrics["final"] > 0
            assert await _workload(session, worker.id) == 0
            assert published == []
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_direct_assign_commits_worker_and_publishes(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session)
            ranked = rank_candidates(task, [worker], AssignmentSettings(requires_approval=False))

            assert await assignment_state.direct_assign(session, task, ranked[0], ranked)

            stored = await _reload(session, task.id)
            assert stored.status == STATUS_ASSIGNED
            assert stored.assigned_worker_id == worker.id
            assert stored.assigned_at is not None
            assert await _workload(session, worker.id) == 1
            assert [(event.task_id, event.source) for event in published] == [
                (task.id, SOURCE_DIRECT),
            ]
            assert published[0].details == {"external_ids": {"crm": "job-42"}}
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_propose_on_already_assigned_task_reports_conflict(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session, task_status=STATUS_ASSIGNED, assigned=True)
            task_id = task.id
            ranked = rank_candidates(task, [worker], AssignmentSettings())

            assert not await assignment_state.propose_assignment(session, task, ranked[0], ranked)

            # The conflict rolls back, which expires loaded instances.
            stored = await _reload(session, task_id)
            assert stored.pending_worker_id is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_approve_pending_commits_the_proposed_worker(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session)
            ranked = rank_candidates(task, [worker], AssignmentSettings())
            await assignment_state.propose_assignment(session, task, ranked[0], ranked)

            approved = await assignment_state.approve_pending(
                session,
                task.id,
                business_id=task.business_id,
            )

            assert approved.status == STATUS_ASSIGNED
            assert approved.assigned_worker_id == worker.id
            assert approved.pending_worker_id is None
            assert approved.pending_proposed_at is None
            assert await _workload(session, worker.id) == 1
            assert [event.source for event in published] == [SOURCE_APPROVAL]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_reject_pending_records_rejection_and_clears_proposal(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session)
            ranked = rank_candidates(task, [worker], AssignmentSettings())
            await assignment_state.propose_assignment(session, task, ranked[0], ranked)

            rejected = await assignment_state.reject_pending(session, task.id, "too far away")

            assert rejected.status == STATUS_UNASSIGNED
            assert rejected.pending_worker_id is None
            rows = await TaskAssignmentRejection.objects.filter_by(task_id=task.id).all(session)
            assert [(row.worker_id, row.reason) for row in rows] == [(worker.id, "too far away")]
            assert rows[0].proposed_at is not None
            assert await _workload(session, worker.id) == 0
            assert published == []
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["approve", "reject"])
async def test_resolving_without_pending_proposal_is_not_found(
    action: str,
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, _ = await _seed(session)

            with pytest.raises(HTTPException) as exc:
                if action == "approve":
                    await assignment_state.approve_pending(session, task.id)
                else:
                    await assignment_state.reject_pending(session, task.id)

            assert exc.value.status_code == 404
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_terminal_task_with_stale_proposal_cannot_be_approved(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session, task_status=STATUS_CANCELLED)
            task.pending_worker_id = worker.id
            session.add(task)
            await session.commit()

            with pytest.raises(HTTPException) as exc:
                await assignment_state.approve_pending(session, task.id)

            assert exc.value.status_code == 404
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_task_from_another_business_is_not_found(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, _ = await _seed(session)

            with pytest.raises(HTTPException) as exc:
                await assignment_state.start_task(session, task.id, business_id=uuid4())

            assert exc.value.status_code == 404
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_manual_assignment_replaces_pending_proposal(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, proposed = await _seed(session)
            chosen = StaffProfile(id=uuid4(), business_id=task.business_id, name="Alex")
            session.add(chosen)
            await session.commit()
            ranked = rank_candidates(task, [proposed], AssignmentSettings())
            await assignment_state.propose_assignment(session, task, ranked[0], ranked)

            assigned = await assignment_state.assign_manually(session, task.id, chosen.id)

            assert assigned.status == STATUS_ASSIGNED
            assert assigned.assigned_worker_id == chosen.id
            assert assigned.pending_worker_id is None
            assert await _workload(session, chosen.id) == 1
            assert await _workload(session, proposed.id) == 0
            assert [event.source for event in published] == [SOURCE_MANUAL]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_manual_assignment_rejects_worker_from_another_business(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, _ = await _seed(session)
            outsider_business = Business(id=uuid4(), name="Other Co")
            outsider = StaffProfile(id=uuid4(), business_id=outsider_business.id, name="Kim")
            session.add(outsider_business)
            session.add(outsider)
            await session.commit()

            with pytest.raises(HTTPException) as exc:
                await assignment_state.assign_manually(session, task.id, outsider.id)

            assert exc.value.status_code == 422
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_manual_assignment_of_assigned_task_conflicts(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session, task_status=STATUS_ASSIGNED, assigned=True)

            with pytest.raises(HTTPException) as exc:
                await assignment_state.assign_manually(session, task.id, worker.id)

            assert exc.value.status_code == 409
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_lifecycle_start_then_complete_releases_workload(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(
                session,
                task_status=STATUS_ASSIGNED,
                assigned=True,
                workload=1,
            )

            started = await assignment_state.start_task(session, task.id)
            assert started.status == STATUS_IN_PROGRESS
            assert started.started_at is not None

            completed = await assignment_state.complete_task(session, task.id)
            assert completed.status == STATUS_COMPLETED
            assert completed.completed_at is not None
            assert completed.assigned_worker_id == worker.id
            assert await _workload(session, worker.id) == 0
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_cancel_assigned_task_releases_workload_and_blocks_further_moves(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(
                session,
                task_status=STATUS_ASSIGNED,
                assigned=True,
                workload=1,
            )

            cancelled = await assignment_state.cancel_task(session, task.id)
            assert cancelled.status == STATUS_CANCELLED
            assert cancelled.cancelled_at is not None
            assert await _workload(session, worker.id) == 0

            for transition in (
                assignment_state.cancel_task,
                assignment_state.start_task,
                assignment_state.complete_task,
            ):
                with pytest.raises(HTTPException) as exc:
                    await transition(session, task.id)
                assert exc.value.status_code == 409
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_cancel_unassigned_task_leaves_workloads_alone(
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(session, workload=2)

            cancelled = await assignment_state.cancel_task(session, task.id)

            assert cancelled.status == STATUS_CANCELLED
            assert await _workload(session, worker.id) == 2
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_unassigned_task_cannot_start(published: list[AssignmentCommitted]) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, _ = await _seed(session)

            with pytest.raises(HTTPException) as exc:
                await assignment_state.start_task(session, task.id)

            assert exc.value.status_code == 409
    finally:
        await engine.dispose()



@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("transition", "task_status"),
    [
        ("reject_pending", STATUS_UNASSIGNED),
        ("start_task", STATUS_ASSIGNED),
        ("complete_task", STATUS_IN_PROGRESS),
        ("cancel_task", STATUS_ASSIGNED),
    ],
)
async def test_task_deleted_after_read_does_not_transition(
    monkeypatch: pytest.MonkeyPatch,
    published: list[AssignmentCommitted],
    transition: str,
    task_status: str,
) -> None:
    engine = await _make_engine()
    try:
        async with await _make_session(engine) as session:
            task, worker = await _seed(
                session,
                task_status=task_status,
                assigned=task_status != STATUS_UNASSIGNED,
                workload=1,
            )
            if task_status == STATUS_UNASSIGNED:
                task.pending_worker_id = worker.id
                session.add(task)
                await session.commit()
            task_id, worker_id = task.id, worker.id
            read_task = assignment_state._get_task

            async def _read_then_soft_delete(*args: object, **kwargs: object) -> Task:
                loaded = await read_task(*args, **kwargs)  # type: ignore[arg-type]
                await session.exec(
                    update(Task)
                    .where(col(Task.id) == task_id)
                    .values(is_deleted=True)
                    .execution_options(synchronize_session=False),
                )
                return loaded

            monkeypatch.setattr(assignment_state, "_get_task", _read_then_soft_delete)

            with pytest.raises(HTTPException) as exc:
                await getattr(assignment_state, transition)(session, task_id)

            assert exc.value.status_code == 409
            assert (await _reload(session, task_id)).status == task_status
            assert await _workload(session, worker_id) == 1
            rejections = await TaskAssignmentRejection.objects.filter_by(task_id=task_id).all(
                session,
            )
            assert rejections == []
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_two_stale_runs_commit_the_same_task_only_once(
    tmp_path: Path,
    published: list[AssignmentCommitted],
) -> None:
    engine = await _make_engine(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
    try:
        async with await _make_session(engine) as seed_session:
            seeded_task, worker = await _seed(seed_session)

        first = await _make_session(engine)
        second = await _make_session(engine)
        try:
            first_task = await _reload(first, seeded_task.id)
            second_task = await _reload(second, seeded_task.id)
            assignment_settings = AssignmentSettings(requires_approval=False)
            first_ranked = rank_candidates(first_task, [worker], assignment_settings)
            second_ranked = rank_candidates(second_task, [worker], assignment_settings)

            won = await assignment_state.direct_assign(
                first,
                first_task,
                first_ranked[0],
                first_ranked,
            )
            lost = await assignment_state.direct_assign(
                second,
                second_task,
                second_ranked[0],
                second_ranked,
            )
        finally:
            await first.close()
            await second.close()

        assert (won, lost) == (True, False)
        async with await _make_session(engine) as session:
            assert await _workload(session, worker.id) == 1
        assert len(published) == 1
    finally:
        await engine.dispose()
