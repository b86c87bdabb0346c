"""Dependency graph schemas: edge create/read, listings, completion verdicts, graph snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import Field, UUID4, model_validator

from .common import TaskPriority, TaskStatus, WireModel
from .tasks import TaskRef, TaskStatusRef, TaskSummary


class DependencyCreate(WireModel):
    """Request body for POST /dependencies."""
    task_id: UUID4
    depends_on_task_id: UUID4


class DependencyRead(WireModel):
    id: UUID4
    task_id: UUID4
    depends_on_task_id: UUID4
    created_at: datetime
    task: TaskRef
    depends_on_task: TaskStatusRef


class DependencyListing(WireModel):
    """Prerequisites of a task and the tasks waiting on it."""
    dependencies: List[TaskSummary] = Field(default_factory=list)
    dependents: List[TaskSummary] = Field(default_factory=list)


class BlockingTask(WireModel):
    id: UUID4
    title: str
    status: TaskStatus


class CompletionVerdict(WireModel):
    can_complete: bool
    blocked_by: List[BlockingTask] = Field(default_factory=list)

    @model_validator(mode="after")
    def _consistent(self) -> "CompletionVerdict":
        if self.can_complete and self.blocked_by:
            raise ValueError("a completable task cannot list blockers")
        return self


class GraphTask(WireModel):
    id: UUID4
    title: str
    status: TaskStatus
    priority: TaskPriority


class GraphEdge(WireModel):
    task_id: UUID4
    depends_on_task_id: UUID4


class DependencyGraph(WireModel):
    tasks: List[GraphTask] = Field(default_factory=list)
    dependencies: List[GraphEdge] = Field(default_factory=list)
