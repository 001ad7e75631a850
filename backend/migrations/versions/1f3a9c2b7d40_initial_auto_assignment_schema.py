"""Initial auto-assignment schema: businesses, staff, tasks, configuration, history.

Revision ID: 1f3a9c2b7d40
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "1f3a9c2b7d40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _create_indexes(table: str, columns: list[str]) -> None:
    for column in columns:
        op.create_index(f"ix_{table}_{column}", table, [column])


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "businesses" not in existing_tables:
        op.create_table(
            "businesses",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("subscription_status", sa.String(), nullable=False),
            sa.Column("enabled_features", sa.JSON(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        _create_indexes("businesses", ["subscription_status", "is_deleted"])

    if "staff_profiles" not in existing_tables:
        op.create_table(
            "staff_profiles",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("role", sa.String(), nullable=False),
            sa.Column("skills", sa.JSON(), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("current_workload", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("max_weekly_hours", sa.Float(), nullable=True),
            sa.Column("current_weekly_hours", sa.Float(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("external_ids", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "current_workload >= 0",
                name="ck_staff_profiles_current_workload_non_negative",
            ),
        )
        _create_indexes("staff_profiles", ["business_id", "user_id", "role", "is_active"])

    if "tasks" not in existing_tables:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("priority", sa.String(), nullable=False),
            sa.Column("due_at", sa.DateTime(), nullable=True),
            sa.Column("required_skills", sa.JSON(), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("assigned_worker_id", sa.Uuid(), nullable=True),
            sa.Column("assigned_at", sa.DateTime(), nullable=True),
            sa.Column("started_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(), nullable=True),
            sa.Column("pending_worker_id", sa.Uuid(), nullable=True),
            sa.Column("pending_proposed_at", sa.DateTime(), nullable=True),
            sa.Column("candidate_worker_ids", sa.JSON(), nullable=True),
            sa.Column("assignment_metrics", sa.JSON(), nullable=True),
            sa.Column("external_ids", sa.JSON(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
            sa.ForeignKeyConstraint(["assigned_worker_id"], ["staff_profiles.id"]),
            sa.ForeignKeyConstraint(["pending_worker_id"], ["staff_profiles.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _create_indexes(
            "tasks",
            [
                "business_id",
                "status",
                "priority",
                "due_at",
                "assigned_worker_id",
                "pending_worker_id",
                "is_deleted",
            ],
        )

    if "task_assignment_rejections" not in existing_tables:
        op.create_table(
            "task_assignment_rejections",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("task_id", sa.Uuid(), nullable=False),
            sa.Column("worker_id", sa.Uuid(), nullable=False),
            sa.Column("reason", sa.String(), nullable=False),
            sa.Column("proposed_at", sa.DateTime(), nullable=True),
            sa.Column("rejected_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
            sa.ForeignKeyConstraint(["worker_id"], ["staff_profiles.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _create_indexes("task_assignment_rejections", ["business_id", "task_id", "worker_id"])

    if "agent_configurations" not in existing_tables:
        op.create_table(
            "agent_configurations",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("agent_type", sa.String(), nullable=False),
            sa.Column("is_enabled", sa.Boolean(), nullable=False),
            sa.Column("requires_approval", sa.Boolean(), nullable=False),
            sa.Column("weights", sa.JSON(), nullable=True),
            sa.Column("skill_priorities", sa.JSON(), nullable=True),
            sa.Column("assignment_frequency_minutes", sa.Integer(), nullable=False),
            sa.Column("respect_max_workload", sa.Boolean(), nullable=False),
            sa.Column("max_tasks_per_worker", sa.Integer(), nullable=False),
            sa.Column("auto_assign_to_roles", sa.JSON(), nullable=True),
            sa.Column("notification_settings", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "business_id",
                "agent_type",
                name="uq_agent_configurations_business_agent_type",
            ),
        )
        _create_indexes("agent_configurations", ["business_id", "agent_type", "is_enabled"])

    if "execution_history" not in existing_tables:
        op.create_table(
            "execution_history",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("job_name", sa.String(), nullable=False),
            sa.Column("business_id", sa.Uuid(), nullable=True),
            sa.Column("started_at", sa.DateTime(), nullable=False),
            sa.Column("ended_at", sa.DateTime(), nullable=True),
            sa.Column("duration_seconds", sa.Float(), nullable=True),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("target_count", sa.Integer(), nullable=False),
            sa.Column("processed_count", sa.Integer(), nullable=False),
            sa.Column("failed_count", sa.Integer(), nullable=False),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("error", sa.String(), nullable=True),
            sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _create_indexes("execution_history", ["job_name", "business_id", "started_at", "status"])


def downgrade() -> None:
    op.drop_table("execution_history")
    op.drop_table("agent_configurations")
    op.drop_table("task_assignment_rejections")
    op.drop_table("tasks")
    op.drop_table("staff_profiles")
    op.drop_table("businesses")
