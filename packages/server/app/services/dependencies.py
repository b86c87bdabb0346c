"""
SQL edge store for the dependency graph engine, plus the request-scoped wiring.

Writes to ``task_dependencies`` are serialized. Two concurrent inserts can each
pass a cycle check against a snapshot that lacks the other's edge and jointly
close a cycle, so the duplicate check, cycle check and insert run under one
lock and are committed before it is released:

- an in-process ``asyncio.Lock`` (one per application, kept on ``app.state``)
- on PostgreSQL, ``pg_advisory_xact_lock`` so that separate worker processes
  queue behind each other for the rest of the transaction

The ``(task_id, depends_on_task_id)`` unique constraint backs up the duplicate
check.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy import delete, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import DuplicateDependencyError
from app.core.redis import get_redis
from app.models.dependency import TaskDependency
from app.models.task import Task
from app.services.activity import DatabaseActivitySink
from app.services.dependency_graph import DependencyGraphEngine, Edge
from app.services.permissions import TeamPermissionOracle, readable_by
from app.services.tasks import SqlTaskStore

log = structlog.get_logger()

# Arbitrary constant shared by every writer of task_dependencies.
DEPENDENCY_WRITE_LOCK_KEY = 0x74776465707321


def _to_edge(dep: TaskDependency) -> Edge:
    return Edge(
        id=dep.id,
        task_id=dep.task_id,
        depends_on_task_id=dep.depends_on_task_id,
        created_at=dep.created_at,
    )


class SqlEdgeStore:
    def __init__(self, session: AsyncSession, lock: Optional[asyncio.Lock] = None):
        self._session = session
        self._lock = lock or asyncio.Lock()

    @asynccontextmanager
    async def write_lock(self) -> AsyncIterator[None]:
        async with self._lock:
            if self._session.bind.dialect.name == "postgresql":
                await self._session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"),
                    {"key": DEPENDENCY_WRITE_LOCK_KEY},
                )
            yield
            await self._session.commit()

    async def get(self, dependency_id: uuid.UUID) -> Optional[Edge]:
        dep = await self._session.get(TaskDependency, dependency_id)
        return _to_edge(dep) if dep else None

    async def find(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> Optional[Edge]:
        result = await self._session.execute(
            select(TaskDependency).where(
                TaskDependency.task_id == task_id,
                TaskDependency.depends_on_task_id == depends_on_task_id,
            )
        )
        dep = result.scalar_one_or_none()
        return _to_edge(dep) if dep else None

    async def _edges_where(self, *criteria) -> list[Edge]:
        result = await self._session.execute(
            select(TaskDependency)
            .where(*criteria)
            .order_by(TaskDependency.created_at, TaskDependency.id)
        )
        return [_to_edge(d) for d in result.scalars().all()]

    async def dependencies_of(self, task_id: uuid.UUID) -> list[Edge]:
        return await self._edges_where(TaskDependency.task_id == task_id)

    async def dependents_of(self, task_id: uuid.UUID) -> list[Edge]:
        return await self._edges_where(TaskDependency.depends_on_task_id == task_id)

    async def visible_edges(
        self, actor_id: uuid.UUID, scope_id: Optional[uuid.UUID] = None
    ) -> list[Edge]:
        visible = select(Task.id).where(readable_by(actor_id))
        if scope_id:
            visible = visible.where(Task.team_id == scope_id)
        return await self._edges_where(
            TaskDependency.task_id.in_(visible),
            TaskDependency.depends_on_task_id.in_(visible),
        )

    async def insert(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> Edge:
        dep = TaskDependency(task_id=task_id, depends_on_task_id=depends_on_task_id)
        self._session.add(dep)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            log.info(
                "dependency.unique_violation",
                task_id=str(task_id),
                depends_on_task_id=str(depends_on_task_id),
            )
            raise DuplicateDependencyError() from exc
        return _to_edge(dep)

    async def delete(self, dependency_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            delete(TaskDependency).where(TaskDependency.id == dependency_id)
        )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------


async def get_activity_sink(
    session: AsyncSession = Depends(get_session),
) -> DatabaseActivitySink:
    publisher = await get_redis() if get_settings().activity_pubsub_enabled else None
    return DatabaseActivitySink(session, publisher)


async def get_dependency_engine(
    request: Request,
    session: AsyncSession = Depends(get_session),
    activity: DatabaseActivitySink = Depends(get_activity_sink),
) -> DependencyGraphEngine:
    """Build a request-scoped engine over the request's database session."""
    return DependencyGraphEngine(
        tasks=SqlTaskStore(session),
        edges=SqlEdgeStore(session, getattr(request.app.state, "dependency_write_lock", None)),
        permissions=TeamPermissionOracle(session),
        activity=activity,
    )
