"""
Dependency graph engine: business logic for "task A depends on task B" edges.

Handles:
- Edge creation with fail-fast precondition checks and cycle rejection
- Edge removal
- Prerequisite / dependent listings
- Completion validation (direct prerequisites only)
- Graph snapshots for rendering

The engine owns no storage. Tasks, edges, authorization and the audit trail
are collaborators handed to the constructor, described by the protocols below.
The SQL-backed implementations live in ``app.services.tasks``,
``app.services.dependencies``, ``app.services.permissions`` and
``app.services.activity``.
"""

from __future__ import annotations

import uuid
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional, Protocol

import structlog

from app.core.errors import (
    CircularDependencyError,
    DuplicateDependencyError,
    NotFoundError,
    PermissionDeniedError,
    SelfDependencyError,
)
from taskweave_shared.schemas.common import ActivityType, TaskStatus
from taskweave_shared.schemas.dependencies import (
    BlockingTask,
    CompletionVerdict,
    DependencyGraph,
    DependencyListing,
    DependencyRead,
    GraphEdge,
    GraphTask,
)
from taskweave_shared.schemas.tasks import TaskRef, TaskStatusRef, TaskSummary

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Edge:
    """A persisted depends-on relation."""

    id: uuid.UUID
    task_id: uuid.UUID
    depends_on_task_id: uuid.UUID
    created_at: datetime


class TaskStore(Protocol):
    async def find_task(self, task_id: uuid.UUID, actor_id: uuid.UUID) -> Optional[TaskSummary]:
        """Return the task if it exists and ``actor_id`` may see it."""

    async def get_tasks(self, task_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, TaskSummary]:
        """Unfiltered lookup used to annotate edges for display."""

    async def list_visible_tasks(
        self, actor_id: uuid.UUID, scope_id: Optional[uuid.UUID] = None
    ) -> list[TaskSummary]:
        ...


class EdgeStore(Protocol):
    def write_lock(self) -> AbstractAsyncContextManager[None]:
        """Serialize edge writes; the write is durable once the block exits cleanly."""

    async def get(self, dependency_id: uuid.UUID) -> Optional[Edge]: ...

    async def find(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> Optional[Edge]: ...

    async def dependencies_of(self, task_id: uuid.UUID) -> list[Edge]:
        """Edges whose dependent is ``task_id``, in insertion order."""

    async def dependents_of(self, task_id: uuid.UUID) -> list[Edge]:
        """Edges whose prerequisite is ``task_id``, in insertion order."""

    async def insert(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> Edge:
        """Persist an edge. Raises DuplicateDependencyError on a uniqueness violation."""

    async def delete(self, dependency_id: uuid.UUID) -> bool: ...

    async def visible_edges(
        self, actor_id: uuid.UUID, scope_id: Optional[uuid.UUID] = None
    ) -> list[Edge]:
        """Edges whose two endpoints are readable by ``actor_id``, optionally within one team."""


class PermissionOracle(Protocol):
    async def can_modify(self, actor_id: uuid.UUID, task_id: uuid.UUID) -> bool: ...

    async def can_read(self, actor_id: uuid.UUID, task_id: uuid.UUID) -> bool: ...


class ActivitySink(Protocol):
    async def record_event(
        self,
        kind: ActivityType,
        description: str,
        related_task_id: uuid.UUID,
        actor_id: uuid.UUID,
        scope_id: Optional[uuid.UUID],
        metadata: dict[str, Any],
    ) -> None:
        """Fire-and-forget: implementations must not raise on delivery failure."""


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------


async def would_create_cycle(
    prerequisites_of: Callable[[uuid.UUID], Awaitable[Iterable[uuid.UUID]]],
    task_id: uuid.UUID,
    depends_on_task_id: uuid.UUID,
) -> bool:
    """True if adding ``task_id -> depends_on_task_id`` would close a cycle.

    Depth-first walk from the prerequisite along existing depends-on edges.
    Reaching ``task_id`` means the new edge would lead back to its own source.
    Uses an explicit frame stack, so depth is not bounded by the call stack,
    and expands every node at most once.
    """
    if task_id == depends_on_task_id:
        return True

    visited: set[uuid.UUID] = {depends_on_task_id}
    in_progress: set[uuid.UUID] = {depends_on_task_id}
    stack: list[tuple[uuid.UUID, Iterator[uuid.UUID]]] = [
        (depends_on_task_id, iter(await prerequisites_of(depends_on_task_id)))
    ]

    while stack:
        node, children = stack[-1]
        for child in children:
            if child == task_id:
                return True
            if child in in_progress:
                # Existing back edge: the stored graph already holds a cycle.
                log.warning(
                    "dependency.existing_cycle_detected",
                    from_task_id=str(node),
                    to_task_id=str(child),
                )
                continue
            if child in visited:
                continue
            visited.add(child)
            in_progress.add(child)
            stack.append((child, iter(await prerequisites_of(child))))
            break
        else:
            stack.pop()
            in_progress.discard(node)

    return False


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class DependencyGraphEngine:
    """Dependency edges between tasks, kept acyclic."""

    def __init__(
        self,
        tasks: TaskStore,
        edges: EdgeStore,
        permissions: PermissionOracle,
        activity: ActivitySink,
    ):
        self._tasks = tasks
        self._edges = edges
        self._permissions = permissions
        self._activity = activity

    async def _prerequisites_of(self, task_id: uuid.UUID) -> list[uuid.UUID]:
        return [e.depends_on_task_id for e in await self._edges.dependencies_of(task_id)]

    async def _readable_task(
        self, actor_id: uuid.UUID, task_id: uuid.UUID, message: str = "Task not found"
    ) -> TaskSummary:
        # Missing and unreadable are reported identically.
        if not await self._permissions.can_read(actor_id, task_id):
            raise NotFoundError(message)
        task = await self._tasks.find_task(task_id, actor_id)
        if task is None:
            raise NotFoundError(message)
        return task

    # -- writes ------------------------------------------------------------

    async def add_dependency(
        self,
        actor_id: uuid.UUID,
        task_id: uuid.UUID,
        depends_on_task_id: uuid.UUID,
    ) -> DependencyRead:
        if task_id == depends_on_task_id:
            raise SelfDependencyError()

        if not await self._permissions.can_modify(actor_id, task_id):
            raise PermissionDeniedError("Insufficient permissions to modify this task's dependencies")

        task = await self._readable_task(actor_id, task_id)
        prerequisite = await self._readable_task(
            actor_id, depends_on_task_id, "Dependency task not found"
        )

        async with self._edges.write_lock():
            if await self._edges.find(task_id, depends_on_task_id) is not None:
                raise DuplicateDependencyError()

            if await would_create_cycle(self._prerequisites_of, task_id, depends_on_task_id):
                log.info(
                    "dependency.cycle_rejected",
                    task_id=str(task_id),
                    depends_on_task_id=str(depends_on_task_id),
                    actor_id=str(actor_id),
                )
                raise CircularDependencyError()

            edge = await self._edges.insert(task_id, depends_on_task_id)

        log.info(
            "dependency.added",
            dependency_id=str(edge.id),
            task_id=str(task_id),
            depends_on_task_id=str(depends_on_task_id),
            actor_id=str(actor_id),
        )

        await self._activity.record_event(
            ActivityType.TASK_UPDATED,
            f'Task "{task.title}" now depends on "{prerequisite.title}"',
            task_id,
            actor_id,
            task.team_id,
            {
                "action": "dependency_added",
                "dependency_id": str(edge.id),
                "dependency_task_id": str(depends_on_task_id),
                "dependency_task_title": prerequisite.title,
            },
        )

        return DependencyRead(
            id=edge.id,
            task_id=edge.task_id,
            depends_on_task_id=edge.depends_on_task_id,
            created_at=edge.created_at,
            task=TaskRef(id=task.id, title=task.title),
            depends_on_task=TaskStatusRef(
                id=prerequisite.id, title=prerequisite.title, status=prerequisite.status
            ),
        )

    async def remove_dependency(self, actor_id: uuid.UUID, dependency_id: uuid.UUID) -> None:
        edge = await self._edges.get(dependency_id)
        if edge is None:
            raise NotFoundError("Dependency not found")

        if not await self._permissions.can_modify(actor_id, edge.task_id):
            raise PermissionDeniedError("Insufficient permissions to modify this task's dependencies")

        async with self._edges.write_lock():
            if not await self._edges.delete(dependency_id):
                # Removed by a concurrent request after our lookup.
                raise NotFoundError("Dependency not found")

        log.info(
            "dependency.removed",
            dependency_id=str(dependency_id),
            task_id=str(edge.task_id),
            depends_on_task_id=str(edge.depends_on_task_id),
            actor_id=str(actor_id),
        )

        task = (await self._tasks.get_tasks([edge.task_id])).get(edge.task_id)
        title = task.title if task else str(edge.task_id)
        await self._activity.record_event(
            ActivityType.TASK_UPDATED,
            f'Task dependency removed from "{title}"',
            edge.task_id,
            actor_id,
            task.team_id if task else None,
            {
                "action": "dependency_removed",
                "dependency_id": str(dependency_id),
                "dependency_task_id": str(edge.depends_on_task_id),
            },
        )

    # -- reads -------------------------------------------------------------

    async def list_dependencies(self, actor_id: uuid.UUID, task_id: uuid.UUID) -> DependencyListing:
        await self._readable_task(actor_id, task_id)

        prerequisite_edges = await self._edges.dependencies_of(task_id)
        dependent_edges = await self._edges.dependents_of(task_id)
        summaries = await self._tasks.get_tasks(
            [e.depends_on_task_id for e in prerequisite_edges]
            + [e.task_id for e in dependent_edges]
        )

        return DependencyListing(
            dependencies=[
                summaries[e.depends_on_task_id]
                for e in prerequisite_edges
                if e.depends_on_task_id in summaries
            ],
            dependents=[summaries[e.task_id] for e in dependent_edges if e.task_id in summaries],
        )

    async def validate_completion(self, actor_id: uuid.UUID, task_id: uuid.UUID) -> CompletionVerdict:
        """Check direct prerequisites only.

        Transitive prerequisites are covered because every prerequisite had to
        pass this same gate when it was itself completed.
        """
        await self._readable_task(actor_id, task_id)

        prerequisite_ids = await self._prerequisites_of(task_id)
        summaries = await self._tasks.get_tasks(prerequisite_ids)

        blocked_by = [
            BlockingTask(id=s.id, title=s.title, status=s.status)
            for s in (summaries[pid] for pid in prerequisite_ids if pid in summaries)
            if s.status != TaskStatus.DONE
        ]
        return CompletionVerdict(can_complete=not blocked_by, blocked_by=blocked_by)

    async def get_dependency_graph(
        self, actor_id: uuid.UUID, scope_id: Optional[uuid.UUID] = None
    ) -> DependencyGraph:
        tasks = await self._tasks.list_visible_tasks(actor_id, scope_id)
        edges = await self._edges.visible_edges(actor_id, scope_id)

        return DependencyGraph(
            tasks=[
                GraphTask(id=t.id, title=t.title, status=t.status, priority=t.priority)
                for t in tasks
            ],
            dependencies=[
                GraphEdge(task_id=e.task_id, depends_on_task_id=e.depends_on_task_id)
                for e in edges
            ],
        )
