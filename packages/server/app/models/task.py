"""Task and task assignment models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    title: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="TODO", index=True)  # TODO | IN_PROGRESS | IN_REVIEW | DONE | CANCELLED
    priority: str = Field(nullable=False, default="MEDIUM", index=True)  # LOW | MEDIUM | HIGH | URGENT
    due_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    completed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_by_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    team_id: Optional[uuid.UUID] = Field(default=None, foreign_key="teams.id", index=True, ondelete="SET NULL")


class TaskAssignment(SQLModel, table=True):
    __tablename__ = "task_assignments"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True, ondelete="CASCADE")
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True, ondelete="CASCADE")
    assigned_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", ondelete="SET NULL")
    assigned_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
