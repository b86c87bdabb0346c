"""
Task endpoints: CRUD with visibility scoping.

Statuses: TODO → IN_PROGRESS → IN_REVIEW → DONE (or CANCELLED)
- Completion gate: moving a task to DONE requires all of its direct
  prerequisites to be DONE.
- Activity events recorded on create, update and completion.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_user
from app.core.database import get_session
from app.services.activity import DatabaseActivitySink
from app.services.dependencies import get_activity_sink, get_dependency_engine
from app.services.dependency_graph import DependencyGraphEngine
from app.services.tasks import (
    create_task,
    delete_task,
    enrich_task,
    enrich_tasks,
    get_task_or_404,
    list_tasks,
    update_task,
)
from taskweave_shared.schemas.common import TaskPriority, TaskStatus
from taskweave_shared.schemas.tasks import TaskCreate, TaskRead, TaskUpdate

router = APIRouter()


@router.get("", response_model=List[TaskRead])
async def list_tasks_endpoint(
    team_id: Optional[uuid.UUID] = Query(None, alias="teamId"),
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    per_page: int = Query(25, ge=1, le=100, alias="perPage"),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List tasks visible to the caller, newest first."""
    tasks = await list_tasks(
        session,
        auth.user_id,
        team_id=team_id,
        status=status,
        priority=priority,
        search=search,
        page=page,
        per_page=per_page,
    )
    return await enrich_tasks(session, tasks)


@router.post("", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    task_in: TaskCreate,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    activity: DatabaseActivitySink = Depends(get_activity_sink),
):
    task = await create_task(session, task_in, auth.user_id, activity)
    return await enrich_task(session, task)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, task_id, auth.user_id)
    return await enrich_task(session, task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    engine: DependencyGraphEngine = Depends(get_dependency_engine),
    activity: DatabaseActivitySink = Depends(get_activity_sink),
):
    """Update task fields. Setting status to DONE is refused while prerequisites are open."""
    task = await get_task_or_404(session, task_id, auth.user_id)
    task = await update_task(session, task, task_in, auth.user_id, engine, activity)
    return await enrich_task(session, task)


@router.delete("/{task_id}")
async def delete_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await delete_task(session, task_id, auth.user_id)
    return {"ok": True}
