"""Initial schema: users, teams, tasks, dependency edges, activity feed.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    # users
    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )

    # teams
    op.create_table(
        "teams",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "team_members",
        sa.Column("team_id", _uuid(), sa.ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="MEMBER"),
        _timestamp("joined_at"),
        sa.CheckConstraint("role IN ('OWNER', 'ADMIN', 'MEMBER')", name="ck_team_member_role"),
    )
    op.create_index("idx_team_members_user", "team_members", ["user_id"])

    # tasks
    op.create_table(
        "tasks",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="TODO"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="MEDIUM"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", _uuid(), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_tasks_team_status", "tasks", ["team_id", "status"])
    op.create_index("idx_tasks_created_by", "tasks", ["created_by_id"])

    op.create_table(
        "task_assignments",
        sa.Column("task_id", _uuid(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("assigned_by_id", _uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _timestamp("assigned_at"),
    )
    op.create_index("idx_task_assignments_user", "task_assignments", ["user_id"])

    # task_dependencies: task_id cannot complete until depends_on_task_id is DONE
    op.create_table(
        "task_dependencies",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("task_id", _uuid(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("depends_on_task_id", _uuid(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint("task_id", "depends_on_task_id", name="uq_task_dependency_pair"),
        sa.CheckConstraint("task_id != depends_on_task_id", name="no_self_dependency"),
    )
    op.create_index("idx_task_dependencies_task", "task_dependencies", ["task_id"])
    op.create_index("idx_task_dependencies_depends_on", "task_dependencies", ["depends_on_task_id"])

    # activities (append-only)
    op.create_table(
        "activities",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", _uuid(), nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("team_id", _uuid(), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=False, server_default="{}"),
        _timestamp("created_at"),
    )
    op.create_index("idx_activities_team_created", "activities", ["team_id", "created_at"])
    op.create_index("idx_activities_user_created", "activities", ["user_id", "created_at"])
    op.create_index("idx_activities_entity", "activities", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("activities")
    op.drop_table("task_dependencies")
    op.drop_table("task_assignments")
    op.drop_table("tasks")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("users")
