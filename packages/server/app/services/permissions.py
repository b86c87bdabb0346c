"""
Task-level authorization backed by team membership.

Read: task creator, any assignee, or any member of the task's team.
Modify: task creator, or an OWNER/ADMIN of the task's team.
"""

from __future__ import annotations

import uuid

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.task import Task, TaskAssignment
from app.models.team import TeamMember
from taskweave_shared.schemas.common import ELEVATED_ROLES


def readable_by(actor_id: uuid.UUID):
    """SQL predicate on Task selecting rows ``actor_id`` may read."""
    return or_(
        Task.created_by_id == actor_id,
        Task.id.in_(
            select(TaskAssignment.task_id).where(TaskAssignment.user_id == actor_id)
        ),
        Task.team_id.in_(
            select(TeamMember.team_id).where(TeamMember.user_id == actor_id)
        ),
    )


async def get_team_role(
    session: AsyncSession, team_id: uuid.UUID, user_id: uuid.UUID
) -> str | None:
    result = await session.execute(
        select(TeamMember.role).where(
            TeamMember.team_id == team_id,
            TeamMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


class TeamPermissionOracle:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def can_read(self, actor_id: uuid.UUID, task_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(Task.id).where(Task.id == task_id, readable_by(actor_id))
        )
        return result.first() is not None

    async def can_modify(self, actor_id: uuid.UUID, task_id: uuid.UUID) -> bool:
        task = await self._session.get(Task, task_id)
        if task is None:
            return False
        if task.created_by_id == actor_id:
            return True
        if task.team_id is None:
            return False
        return await get_team_role(self._session, task.team_id, actor_id) in ELEVATED_ROLES
