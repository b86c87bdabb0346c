"""Team and team membership models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Team(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "teams"

    name: str = Field(nullable=False)
    description: Optional[str] = None


class TeamMember(SQLModel, table=True):
    __tablename__ = "team_members"

    team_id: uuid.UUID = Field(foreign_key="teams.id", primary_key=True, ondelete="CASCADE")
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True, ondelete="CASCADE")
    role: str = Field(nullable=False, default="MEMBER")  # OWNER | ADMIN | MEMBER
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
