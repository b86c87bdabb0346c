"""
Activity service: audit trail sink and the activity feed.

The sink is best-effort. A failed insert or publish is logged and rolled back
without failing the operation that produced the event.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.activity import Activity
from app.models.team import TeamMember
from taskweave_shared.schemas.common import ActivityType, EntityType
from taskweave_shared.schemas.teams import ActivityRead

log = structlog.get_logger()

ACTIVITY_PUBSUB_CHANNEL = "tw:activity:pubsub"
DEFAULT_FEED_LIMIT = 50


class DatabaseActivitySink:
    """Persist activity rows and optionally fan them out over Redis Pub/Sub."""

    def __init__(self, session: AsyncSession, publisher: Optional[redis.Redis] = None):
        self._session = session
        self._publisher = publisher

    async def record_event(
        self,
        kind: ActivityType,
        description: str,
        related_task_id: uuid.UUID,
        actor_id: uuid.UUID,
        scope_id: Optional[uuid.UUID],
        metadata: dict[str, Any],
        entity_type: EntityType = EntityType.TASK,
    ) -> None:
        activity = Activity(
            type=kind.value,
            description=description,
            entity_type=entity_type.value,
            entity_id=related_task_id,
            user_id=actor_id,
            team_id=scope_id,
            details=metadata,
        )
        try:
            self._session.add(activity)
            await self._session.commit()
        except SQLAlchemyError:
            log.exception("activity.persist_failed", type=kind.value, entity_id=str(related_task_id))
            await self._session.rollback()
            return

        if self._publisher is None:
            return

        event_json = json.dumps(
            ActivityRead.model_validate(activity).model_dump(mode="json", by_alias=True)
        )
        try:
            await self._publisher.publish(ACTIVITY_PUBSUB_CHANNEL, event_json)
        except RedisError:
            log.warning("activity.publish_failed", activity_id=str(activity.id), exc_info=True)


async def list_activities(
    session: AsyncSession,
    actor_id: uuid.UUID,
    team_id: Optional[uuid.UUID] = None,
    limit: int = DEFAULT_FEED_LIMIT,
) -> list[ActivityRead]:
    """Feed for a user: their own actions plus everything in their teams."""
    my_teams = select(TeamMember.team_id).where(TeamMember.user_id == actor_id)

    stmt = select(Activity)
    if team_id:
        stmt = stmt.where(Activity.team_id == team_id, Activity.team_id.in_(my_teams))
    else:
        stmt = stmt.where(or_(Activity.user_id == actor_id, Activity.team_id.in_(my_teams)))

    stmt = stmt.order_by(Activity.created_at.desc()).limit(limit)
    result = await session.execute(stmt)
    return [ActivityRead.model_validate(a) for a in result.scalars().all()]
