"""Activity feed entry (append-only audit trail)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Activity(UUIDMixin, SQLModel, table=True):
    __tablename__ = "activities"

    type: str = Field(nullable=False)  # e.g. TASK_UPDATED, TEAM_CREATED
    description: str = Field(nullable=False)
    entity_type: str = Field(nullable=False)  # TASK | TEAM
    entity_id: uuid.UUID = Field(nullable=False, index=True)
    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True, ondelete="SET NULL")
    team_id: Optional[uuid.UUID] = Field(default=None, foreign_key="teams.id", index=True, ondelete="SET NULL")
    details: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
