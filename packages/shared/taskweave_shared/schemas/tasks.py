"""Task-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import Field
from pydantic import UUID4

from .common import TaskPriority, TaskStatus, WireModel


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskBase(WireModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None


class TaskCreate(TaskBase):
    team_id: Optional[UUID4] = None
    assignee_ids: List[UUID4] = Field(default_factory=list)


class TaskUpdate(WireModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None


class TaskRead(WireModel):
    id: UUID4
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by_id: UUID4
    team_id: Optional[UUID4] = None
    assignee_ids: List[UUID4] = Field(default_factory=list)
    dependency_ids: List[UUID4] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Compact views used by the dependency engine
# ---------------------------------------------------------------------------

class TaskSummary(WireModel):
    """What the dependency engine knows about a task."""
    id: UUID4
    title: str
    status: TaskStatus
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    team_id: Optional[UUID4] = None


class TaskRef(WireModel):
    id: UUID4
    title: str


class TaskStatusRef(TaskRef):
    status: TaskStatus
