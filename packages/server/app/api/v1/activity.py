"""
Activity feed endpoint.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_user
from app.core.database import get_session
from app.services.activity import DEFAULT_FEED_LIMIT, list_activities
from taskweave_shared.schemas.teams import ActivityRead

router = APIRouter()


@router.get("", response_model=List[ActivityRead])
async def activity_feed_endpoint(
    team_id: Optional[uuid.UUID] = Query(None, alias="teamId"),
    limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=200),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Most recent first: the caller's own actions plus activity in their teams."""
    return await list_activities(session, auth.user_id, team_id, limit)
