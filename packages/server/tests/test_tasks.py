"""
Tests for task endpoints and the SQL-backed stores.

Tests cover:
- Task CRUD, filters and visibility
- Team membership required to file tasks under a team
- Reopening a completed task clears completed_at
- Explicit nulls on NOT NULL fields leave them unchanged
- Deleting a task removes its dependency edges
- SqlEdgeStore: unique-constraint mapping, insertion order and visible edges
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
from httpx import AsyncClient

from app.core.errors import DuplicateDependencyError
from app.models.dependency import TaskDependency
from app.models.task import Task
from app.models.team import Team, TeamMember
from app.models.user import User
from app.services.dependencies import SqlEdgeStore
from app.services.tasks import SqlTaskStore
from taskweave_shared.schemas.common import TaskStatus, TeamRole


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


class TestTaskEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_get(self, client: AsyncClient, make_user):
        user, headers = await make_user()
        resp = await client.post(
            "/api/v1/tasks",
            json={"title": "Write docs", "description": "API guide", "priority": "HIGH"},
            headers=headers,
        )
        assert resp.status_code == 201
        task = resp.json()
        assert task["status"] == "TODO"
        assert task["priority"] == "HIGH"
        assert task["createdById"] == str(user.id)
        assert task["completedAt"] is None

        resp = await client.get(f"/api/v1/tasks/{task['id']}", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["title"] == "Write docs"

    @pytest.mark.asyncio
    async def test_title_validated(self, client: AsyncClient, make_user):
        _, headers = await make_user()
        resp = await client.post("/api/v1/tasks", json={"title": ""}, headers=headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_team_task_requires_membership(self, client: AsyncClient, make_user, make_team):
        owner, _ = await make_user("owner")
        _, outsider = await make_user("outsider")
        team = await make_team({owner.id: TeamRole.OWNER.value})

        resp = await client.post(
            "/api/v1/tasks", json={"title": "Sneaky", "teamId": str(team.id)}, headers=outsider
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_assignee_can_see_task(self, client: AsyncClient, make_user):
        _, alice = await make_user("alice")
        bob, bob_h = await make_user("bob")
        resp = await client.post(
            "/api/v1/tasks",
            json={"title": "Review", "assigneeIds": [str(bob.id)]},
            headers=alice,
        )
        task_id = resp.json()["id"]
        assert resp.json()["assigneeIds"] == [str(bob.id)]

        resp = await client.get(f"/api/v1/tasks/{task_id}", headers=bob_h)
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_invisible_task_is_not_found(self, client: AsyncClient, make_user):
        _, alice = await make_user("alice")
        _, bob = await make_user("bob")
        task_id = (await client.post("/api/v1/tasks", json={"title": "Private"}, headers=alice)).json()["id"]

        resp = await client.get(f"/api/v1/tasks/{task_id}", headers=bob)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_filters(self, client: AsyncClient, make_user):
        _, headers = await make_user()
        for title, priority in [("Alpha", "LOW"), ("Beta", "HIGH"), ("Gamma", "HIGH")]:
            await client.post("/api/v1/tasks", json={"title": title, "priority": priority}, headers=headers)

        resp = await client.get("/api/v1/tasks", params={"priority": "HIGH"}, headers=headers)
        assert {t["title"] for t in resp.json()} == {"Beta", "Gamma"}

        resp = await client.get("/api/v1/tasks", params={"search": "amm"}, headers=headers)
        assert [t["title"] for t in resp.json()] == ["Gamma"]

        resp = await client.get("/api/v1/tasks", params={"perPage": 2}, headers=headers)
        assert len(resp.json()) == 2

    @pytest.mark.asyncio
    async def test_reopen_clears_completed_at(self, client: AsyncClient, make_user):
        _, headers = await make_user()
        task_id = (await client.post("/api/v1/tasks", json={"title": "T"}, headers=headers)).json()["id"]

        resp = await client.patch(f"/api/v1/tasks/{task_id}", json={"status": "DONE"}, headers=headers)
        assert resp.json()["completedAt"] is not None

        resp = await client.patch(
            f"/api/v1/tasks/{task_id}", json={"status": "IN_PROGRESS"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "IN_PROGRESS"
        assert resp.json()["completedAt"] is None

    @pytest.mark.asyncio
    async def test_update_fields_without_status(self, client: AsyncClient, make_user):
        _, headers = await make_user()
        task_id = (await client.post("/api/v1/tasks", json={"title": "Old"}, headers=headers)).json()["id"]

        resp = await client.patch(
            f"/api/v1/tasks/{task_id}", json={"title": "New", "priority": "URGENT"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "New"
        assert resp.json()["priority"] == "URGENT"
        assert resp.json()["status"] == "TODO"

    @pytest.mark.asyncio
    async def test_null_priority_and_title_leave_fields_unchanged(self, client: AsyncClient, make_user):
        _, headers = await make_user()
        task_id = (
            await client.post("/api/v1/tasks", json={"title": "Keep", "priority": "HIGH"}, headers=headers)
        ).json()["id"]

        resp = await client.patch(
            f"/api/v1/tasks/{task_id}",
            json={"priority": None, "title": None, "status": None},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["priority"] == "HIGH"
        assert resp.json()["title"] == "Keep"
        assert resp.json()["status"] == "TODO"

    @pytest.mark.asyncio
    async def test_delete_removes_edges(self, client: AsyncClient, make_user):
        _, headers = await make_user()
        a = (await client.post("/api/v1/tasks", json={"title": "A"}, headers=headers)).json()["id"]
        b = (await client.post("/api/v1/tasks", json={"title": "B"}, headers=headers)).json()["id"]
        await client.post(
            "/api/v1/dependencies", json={"taskId": b, "dependsOnTaskId": a}, headers=headers
        )

        resp = await client.delete(f"/api/v1/tasks/{a}", headers=headers)
        assert resp.status_code == 200

        resp = await client.get(f"/api/v1/dependencies/task/{b}", headers=headers)
        assert resp.json()["dependencies"] == []
        resp = await client.get(f"/api/v1/dependencies/task/{b}/validate-completion", headers=headers)
        assert resp.json()["canComplete"] is True

    @pytest.mark.asyncio
    async def test_delete_needs_modify_rights(self, client: AsyncClient, make_user, make_team):
        owner, owner_h = await make_user("owner")
        member, member_h = await make_user("member")
        team = await make_team({owner.id: TeamRole.OWNER.value, member.id: TeamRole.MEMBER.value})
        task_id = (
            await client.post("/api/v1/tasks", json={"title": "T", "teamId": str(team.id)}, headers=owner_h)
        ).json()["id"]

        resp = await client.delete(f"/api/v1/tasks/{task_id}", headers=member_h)
        assert resp.status_code == 403

        _, stranger_h = await make_user("stranger")
        resp = await client.delete(f"/api/v1/tasks/{task_id}", headers=stranger_h)
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# SQL stores
# ---------------------------------------------------------------------------


async def _seed(session, *titles: str):
    user = User(email=f"{uuid.uuid4().hex[:8]}@example.com", display_name="seed")
    session.add(user)
    await session.flush()
    tasks = [Task(title=t, created_by_id=user.id) for t in titles]
    session.add_all(tasks)
    await session.commit()
    return user, [t.id for t in tasks]


class TestSqlStores:
    @pytest.mark.asyncio
    async def test_unique_violation_maps_to_duplicate(self, session):
        _, (a, b) = await _seed(session, "A", "B")
        store = SqlEdgeStore(session)
        async with store.write_lock():
            await store.insert(b, a)

        with pytest.raises(DuplicateDependencyError):
            async with store.write_lock():
                await store.insert(b, a)

        assert len(await store.dependencies_of(b)) == 1

    @pytest.mark.asyncio
    async def test_edges_come_back_in_insertion_order(self, session):
        user, (a, b, c, d) = await _seed(session, "A", "B", "C", "D")
        store = SqlEdgeStore(session)
        async with store.write_lock():
            for prereq in (c, a, d):
                await store.insert(b, prereq)

        assert [e.depends_on_task_id for e in await store.dependencies_of(b)] == [c, a, d]
        assert [e.task_id for e in await store.dependents_of(a)] == [b]
        assert [(e.task_id, e.depends_on_task_id) for e in await store.visible_edges(user.id)] == [
            (b, c),
            (b, a),
            (b, d),
        ]

    @pytest.mark.asyncio
    async def test_visible_edges_need_both_endpoints_readable(self, session):
        user, (a, b) = await _seed(session, "A", "B")
        _, (hidden,) = await _seed(session, "Hidden")
        team = Team(name="Platform")
        session.add(team)
        await session.flush()
        session.add(TeamMember(team_id=team.id, user_id=user.id, role=TeamRole.MEMBER.value))
        team_task = Task(title="Team", created_by_id=user.id, team_id=team.id)
        team_task_2 = Task(title="Team 2", created_by_id=user.id, team_id=team.id)
        session.add_all([team_task, team_task_2])
        await session.commit()

        store = SqlEdgeStore(session)
        async with store.write_lock():
            await store.insert(b, a)
            await store.insert(b, hidden)
            await store.insert(team_task.id, a)
            await store.insert(team_task_2.id, team_task.id)

        pairs = [(e.task_id, e.depends_on_task_id) for e in await store.visible_edges(user.id)]
        assert pairs == [(b, a), (team_task.id, a), (team_task_2.id, team_task.id)]

        scoped = await store.visible_edges(user.id, team.id)
        assert [(e.task_id, e.depends_on_task_id) for e in scoped] == [(team_task_2.id, team_task.id)]
        assert await store.visible_edges(uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_visible_edges_over_many_tasks(self, session):
        titles = [f"T{i}" for i in range(1500)]
        user, ids = await _seed(session, *titles)
        session.add_all(
            TaskDependency(task_id=later, depends_on_task_id=earlier)
            for earlier, later in zip(ids, ids[1:])
        )
        await session.commit()

        edges = await SqlEdgeStore(session).visible_edges(user.id)
        assert len(edges) == len(ids) - 1

    @pytest.mark.asyncio
    async def test_delete_reports_missing(self, session):
        _, (a, b) = await _seed(session, "A", "B")
        store = SqlEdgeStore(session)
        async with store.write_lock():
            edge = await store.insert(b, a)
        async with store.write_lock():
            assert await store.delete(edge.id)
        async with store.write_lock():
            assert not await store.delete(edge.id)
        assert await store.get(edge.id) is None

    @pytest.mark.asyncio
    async def test_write_lock_is_shared(self, session):
        lock = asyncio.Lock()
        store = SqlEdgeStore(session, lock)
        async with store.write_lock():
            assert lock.locked()
        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_task_store_visibility(self, session):
        user, (a,) = await _seed(session, "A")
        store = SqlTaskStore(session)

        found = await store.find_task(a, user.id)
        assert found is not None and found.status == TaskStatus.TODO
        assert await store.find_task(a, uuid.uuid4()) is None
        assert await store.get_tasks([a, uuid.uuid4()]) == {a: found}
        assert [t.id for t in await store.list_visible_tasks(user.id)] == [a]
