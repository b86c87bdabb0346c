"""
Dependency endpoints: add/remove edges, listings, completion check, graph.

- A task cannot depend on itself, and an edge may not close a cycle.
- Only users who can modify a task can change its prerequisites.
- Tasks the caller cannot see are reported as not found.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.auth import AuthenticatedUser, get_current_user
from app.services.dependencies import get_dependency_engine
from app.services.dependency_graph import DependencyGraphEngine
from taskweave_shared.schemas.dependencies import (
    CompletionVerdict,
    DependencyCreate,
    DependencyGraph,
    DependencyListing,
    DependencyRead,
)

router = APIRouter()


@router.post("", response_model=DependencyRead, status_code=201)
async def add_dependency_endpoint(
    dep_in: DependencyCreate,
    auth: AuthenticatedUser = Depends(get_current_user),
    engine: DependencyGraphEngine = Depends(get_dependency_engine),
):
    """Make ``taskId`` depend on ``dependsOnTaskId``."""
    return await engine.add_dependency(auth.user_id, dep_in.task_id, dep_in.depends_on_task_id)


@router.get("/graph", response_model=DependencyGraph)
async def dependency_graph_endpoint(
    team_id: Optional[uuid.UUID] = Query(None, alias="teamId"),
    auth: AuthenticatedUser = Depends(get_current_user),
    engine: DependencyGraphEngine = Depends(get_dependency_engine),
):
    """Visible tasks and the edges between them, optionally limited to one team."""
    return await engine.get_dependency_graph(auth.user_id, team_id)


@router.get("/task/{task_id}", response_model=DependencyListing)
async def list_dependencies_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    engine: DependencyGraphEngine = Depends(get_dependency_engine),
):
    return await engine.list_dependencies(auth.user_id, task_id)


@router.get("/task/{task_id}/validate-completion", response_model=CompletionVerdict)
async def validate_completion_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    engine: DependencyGraphEngine = Depends(get_dependency_engine),
):
    return await engine.validate_completion(auth.user_id, task_id)


@router.delete("/{dependency_id}")
async def remove_dependency_endpoint(
    dependency_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    engine: DependencyGraphEngine = Depends(get_dependency_engine),
):
    await engine.remove_dependency(auth.user_id, dependency_id)
    return {"ok": True}
