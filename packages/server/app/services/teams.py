"""
Team service: team creation and membership.

The creator of a team becomes its OWNER. Only OWNER or ADMIN members can add
people. Roles feed the task permission oracle.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.models.team import Team, TeamMember
from app.models.user import User
from app.services.activity import DatabaseActivitySink
from app.services.permissions import get_team_role
from taskweave_shared.schemas.common import ActivityType, ELEVATED_ROLES, EntityType, TeamRole
from taskweave_shared.schemas.teams import TeamCreate, TeamMemberAdd, TeamRead

log = structlog.get_logger()


async def create_team(
    session: AsyncSession,
    req: TeamCreate,
    creator_id: uuid.UUID,
    activity: DatabaseActivitySink,
) -> TeamRead:
    team = Team(name=req.name, description=req.description)
    session.add(team)
    await session.flush()

    session.add(TeamMember(team_id=team.id, user_id=creator_id, role=TeamRole.OWNER.value))
    await session.commit()
    await session.refresh(team)

    log.info("team.created", team_id=str(team.id), creator=str(creator_id))
    await activity.record_event(
        ActivityType.TEAM_CREATED,
        f'Team "{team.name}" was created',
        team.id,
        creator_id,
        team.id,
        {"team_name": team.name},
        entity_type=EntityType.TEAM,
    )
    return TeamRead(
        id=team.id,
        name=team.name,
        description=team.description,
        role=TeamRole.OWNER,
        created_at=team.created_at,
    )


async def list_user_teams(session: AsyncSession, user_id: uuid.UUID) -> list[TeamRead]:
    """List all teams a user belongs to, with their role."""
    result = await session.execute(
        select(Team, TeamMember.role)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
        .order_by(Team.created_at)
    )
    return [
        TeamRead(
            id=team.id,
            name=team.name,
            description=team.description,
            role=TeamRole(role),
            created_at=team.created_at,
        )
        for team, role in result.all()
    ]


async def add_member(
    session: AsyncSession,
    team_id: uuid.UUID,
    req: TeamMemberAdd,
    actor_id: uuid.UUID,
    activity: DatabaseActivitySink,
) -> TeamMember:
    actor_role = await get_team_role(session, team_id, actor_id)
    if actor_role is None:
        raise NotFoundError("Team not found")
    if actor_role not in ELEVATED_ROLES:
        raise PermissionDeniedError("Only team owners and admins can add members")
    if req.role == TeamRole.OWNER and actor_role != TeamRole.OWNER.value:
        raise PermissionDeniedError("Only team owners can add owners")

    if await session.get(User, req.user_id) is None:
        raise NotFoundError("User not found")
    if await get_team_role(session, team_id, req.user_id) is not None:
        raise ConflictError("User is already a member of this team")

    member = TeamMember(team_id=team_id, user_id=req.user_id, role=req.role.value)
    session.add(member)
    await session.commit()
    await session.refresh(member)

    log.info("team.member_added", team_id=str(team_id), user_id=str(req.user_id), role=req.role.value)
    await activity.record_event(
        ActivityType.TEAM_JOINED,
        "A new member joined the team",
        team_id,
        actor_id,
        team_id,
        {"user_id": str(req.user_id), "role": req.role.value},
        entity_type=EntityType.TEAM,
    )
    return member
