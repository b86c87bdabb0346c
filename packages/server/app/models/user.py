"""User model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)
    display_name: str = Field(nullable=False)
    avatar_url: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
