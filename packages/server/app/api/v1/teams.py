"""
Team endpoints: create, list my teams, add members.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_user
from app.core.database import get_session
from app.services.activity import DatabaseActivitySink
from app.services.dependencies import get_activity_sink
from app.services.teams import add_member, create_team, list_user_teams
from taskweave_shared.schemas.teams import TeamCreate, TeamMemberAdd, TeamMemberRead, TeamRead

router = APIRouter()


@router.get("", response_model=List[TeamRead])
async def list_teams_endpoint(
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List the caller's teams with their role in each."""
    return await list_user_teams(session, auth.user_id)


@router.post("", response_model=TeamRead, status_code=201)
async def create_team_endpoint(
    req: TeamCreate,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    activity: DatabaseActivitySink = Depends(get_activity_sink),
):
    return await create_team(session, req, auth.user_id, activity)


@router.post("/{team_id}/members", response_model=TeamMemberRead, status_code=201)
async def add_member_endpoint(
    team_id: uuid.UUID,
    req: TeamMemberAdd,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    activity: DatabaseActivitySink = Depends(get_activity_sink),
):
    """Add a user to the team. Requires OWNER or ADMIN."""
    return await add_member(session, team_id, req, auth.user_id, activity)
