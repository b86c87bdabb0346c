"""
Team and activity-feed schemas shared between server and clients.

Covers: team create/read, membership management, activity feed entries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field, UUID4

from .common import ActivityType, EntityType, TeamRole, WireModel


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

class TeamCreate(WireModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class TeamRead(WireModel):
    id: UUID4
    name: str
    description: Optional[str] = None
    role: Optional[TeamRole] = None
    created_at: datetime


class TeamMemberAdd(WireModel):
    user_id: UUID4
    role: TeamRole = TeamRole.MEMBER


class TeamMemberRead(WireModel):
    team_id: UUID4
    user_id: UUID4
    role: TeamRole
    joined_at: datetime


# ---------------------------------------------------------------------------
# Activity feed
# ---------------------------------------------------------------------------

class ActivityRead(WireModel):
    id: UUID4
    type: ActivityType
    description: str
    entity_type: EntityType
    entity_id: UUID4
    user_id: Optional[UUID4] = None
    team_id: Optional[UUID4] = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
