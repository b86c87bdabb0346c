"""Task dependency edge: ``task_id`` cannot be completed until ``depends_on_task_id`` is DONE."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class TaskDependency(UUIDMixin, SQLModel, table=True):
    __tablename__ = "task_dependencies"
    __table_args__ = (
        CheckConstraint("task_id != depends_on_task_id", name="no_self_dependency"),
        UniqueConstraint("task_id", "depends_on_task_id", name="uq_task_dependency_pair"),
    )

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True, ondelete="CASCADE")
    depends_on_task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True, ondelete="CASCADE")
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
