"""
Task service layer: business logic for tasks.

Handles:
- Task CRUD with team scoping and assignee assignments
- Visibility (creator, assignee, team member) via the SQL task store
- Completion gate: moving a task to DONE requires its prerequisites to be DONE
- Enrichment of task data for API responses
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

import structlog
from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFoundError, PermissionDeniedError, TaskBlockedError
from app.models.dependency import TaskDependency
from app.models.task import Task, TaskAssignment
from app.services.activity import DatabaseActivitySink
from app.services.dependency_graph import DependencyGraphEngine
from app.services.permissions import TeamPermissionOracle, get_team_role, readable_by
from taskweave_shared.schemas.common import ActivityType, TaskPriority, TaskStatus
from taskweave_shared.schemas.tasks import TaskCreate, TaskRead, TaskSummary, TaskUpdate

log = structlog.get_logger()

NON_NULLABLE_FIELDS = ("title", "priority")


def _summary(task: Task) -> TaskSummary:
    return TaskSummary(
        id=task.id,
        title=task.title,
        status=TaskStatus(task.status),
        priority=TaskPriority(task.priority),
        due_date=task.due_date,
        team_id=task.team_id,
    )


# ---------------------------------------------------------------------------
# Task store (dependency engine collaborator)
# ---------------------------------------------------------------------------


class SqlTaskStore:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_task(self, task_id: uuid.UUID, actor_id: uuid.UUID) -> Optional[TaskSummary]:
        result = await self._session.execute(
            select(Task).where(Task.id == task_id, readable_by(actor_id))
        )
        task = result.scalar_one_or_none()
        return _summary(task) if task else None

    async def get_tasks(self, task_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, TaskSummary]:
        ids = list(set(task_ids))
        if not ids:
            return {}
        result = await self._session.execute(select(Task).where(Task.id.in_(ids)))
        return {t.id: _summary(t) for t in result.scalars().all()}

    async def list_visible_tasks(
        self, actor_id: uuid.UUID, scope_id: Optional[uuid.UUID] = None
    ) -> list[TaskSummary]:
        stmt = select(Task).where(readable_by(actor_id))
        if scope_id:
            stmt = stmt.where(Task.team_id == scope_id)
        stmt = stmt.order_by(Task.created_at, Task.id)
        result = await self._session.execute(stmt)
        return [_summary(t) for t in result.scalars().all()]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_task_or_404(
    session: AsyncSession, task_id: uuid.UUID, actor_id: uuid.UUID
) -> Task:
    result = await session.execute(
        select(Task).where(Task.id == task_id, readable_by(actor_id))
    )
    task = result.scalar_one_or_none()
    if not task:
        raise NotFoundError("Task not found")
    return task


async def _get_assignee_ids(session: AsyncSession, task_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(TaskAssignment.user_id)
        .where(TaskAssignment.task_id == task_id)
        .order_by(TaskAssignment.assigned_at)
    )
    return [row[0] for row in result.all()]


async def _get_dependency_ids(session: AsyncSession, task_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(TaskDependency.depends_on_task_id)
        .where(TaskDependency.task_id == task_id)
        .order_by(TaskDependency.created_at)
    )
    return [row[0] for row in result.all()]


async def enrich_task(session: AsyncSession, task: Task) -> TaskRead:
    """Convert a Task ORM object to a TaskRead with assignees and prerequisites."""
    return TaskRead(
        id=task.id,
        title=task.title,
        description=task.description,
        status=TaskStatus(task.status),
        priority=TaskPriority(task.priority),
        due_date=task.due_date,
        completed_at=task.completed_at,
        created_by_id=task.created_by_id,
        team_id=task.team_id,
        assignee_ids=await _get_assignee_ids(session, task.id),
        dependency_ids=await _get_dependency_ids(session, task.id),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


async def enrich_tasks(session: AsyncSession, tasks: Sequence[Task]) -> list[TaskRead]:
    return [await enrich_task(session, t) for t in tasks]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_task(
    session: AsyncSession,
    task_in: TaskCreate,
    actor_id: uuid.UUID,
    activity: DatabaseActivitySink,
) -> Task:
    if task_in.team_id and await get_team_role(session, task_in.team_id, actor_id) is None:
        raise NotFoundError("Team not found")

    task = Task(
        title=task_in.title,
        description=task_in.description,
        priority=task_in.priority.value,
        status=TaskStatus.TODO.value,
        due_date=task_in.due_date,
        created_by_id=actor_id,
        team_id=task_in.team_id,
    )
    session.add(task)
    await session.flush()

    for uid in dict.fromkeys(task_in.assignee_ids):
        session.add(TaskAssignment(task_id=task.id, user_id=uid, assigned_by_id=actor_id))

    await session.commit()
    await session.refresh(task)
    log.info("task.created", task_id=str(task.id), actor_id=str(actor_id), team_id=str(task.team_id))

    await activity.record_event(
        ActivityType.TASK_CREATED,
        f'Task "{task.title}" was created',
        task.id,
        actor_id,
        task.team_id,
        {"task_title": task.title, "priority": task.priority},
    )
    return task


async def list_tasks(
    session: AsyncSession,
    actor_id: uuid.UUID,
    *,
    team_id: Optional[uuid.UUID] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = 25,
) -> list[Task]:
    stmt = select(Task).where(readable_by(actor_id))
    if team_id:
        stmt = stmt.where(Task.team_id == team_id)
    if status:
        stmt = stmt.where(Task.status == status.value)
    if priority:
        stmt = stmt.where(Task.priority == priority.value)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    stmt = stmt.order_by(Task.created_at.desc()).offset((page - 1) * per_page).limit(per_page)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_task(
    session: AsyncSession,
    task: Task,
    task_in: TaskUpdate,
    actor_id: uuid.UUID,
    engine: DependencyGraphEngine,
    activity: DatabaseActivitySink,
) -> Task:
    """Apply a partial update. A move to DONE goes through the completion gate first."""
    data = task_in.model_dump(exclude_unset=True)
    old_status = task.status
    new_status = data.pop("status", None)

    completing = new_status == TaskStatus.DONE and old_status != TaskStatus.DONE.value
    if completing:
        verdict = await engine.validate_completion(actor_id, task.id)
        if not verdict.can_complete:
            titles = ", ".join(b.title for b in verdict.blocked_by)
            raise TaskBlockedError(
                f"Cannot complete task. Blocked by incomplete dependencies: {titles}",
                blocked_by=[b.model_dump(mode="json", by_alias=True) for b in verdict.blocked_by],
            )

    # Explicit nulls on NOT NULL columns mean "leave unchanged".
    for key in NON_NULLABLE_FIELDS:
        if key in data and data[key] is None:
            data.pop(key)

    if "priority" in data:
        data["priority"] = data["priority"].value

    for key, value in data.items():
        setattr(task, key, value)

    if new_status is not None:
        task.status = new_status.value
        if new_status == TaskStatus.DONE:
            if completing:
                task.completed_at = datetime.now(timezone.utc)
        else:
            task.completed_at = None  # reopen

    session.add(task)
    await session.commit()
    await session.refresh(task)

    kind = ActivityType.TASK_COMPLETED if completing else ActivityType.TASK_UPDATED
    log.info("task.updated", task_id=str(task.id), actor_id=str(actor_id), completed=completing)
    await activity.record_event(
        kind,
        f'Task "{task.title}" was completed' if completing else f'Task "{task.title}" was updated',
        task.id,
        actor_id,
        task.team_id,
        {
            "task_title": task.title,
            "changes": task_in.model_dump(exclude_unset=True, mode="json"),
        },
    )
    return task


async def delete_task(session: AsyncSession, task_id: uuid.UUID, actor_id: uuid.UUID) -> None:
    """Delete a task together with its edges and assignments."""
    oracle = TeamPermissionOracle(session)
    if not await oracle.can_modify(actor_id, task_id):
        if await oracle.can_read(actor_id, task_id):
            raise PermissionDeniedError("Insufficient permissions to delete this task")
        raise NotFoundError("Task not found")

    await session.execute(
        delete(TaskDependency).where(
            or_(
                TaskDependency.task_id == task_id,
                TaskDependency.depends_on_task_id == task_id,
            )
        )
    )
    await session.execute(delete(TaskAssignment).where(TaskAssignment.task_id == task_id))
    await session.execute(delete(Task).where(Task.id == task_id))
    await session.flush()
    log.info("task.deleted", task_id=str(task_id), actor_id=str(actor_id))
