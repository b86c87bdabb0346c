"""
Shared fixtures for server tests.

Each test gets a fresh in-memory SQLite database (aiosqlite) with the full
schema, and an httpx client whose requests use sessions bound to it.
"""

import asyncio
import os
import uuid

# Must be set before app modules build their engine from settings.
os.environ.setdefault("TW_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TW_LOG_FORMAT", "text")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.core.auth import create_jwt
from app.core.database import get_session
from app.main import app
from app.models.team import Team, TeamMember
from app.models.user import User


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def client(session_factory):
    async def _get_test_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _get_test_session
    # A lock created in an earlier test's event loop cannot be reused.
    app.state.dependency_write_lock = asyncio.Lock()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Create a user; returns (user, auth headers)."""

    async def _make(name: str = "alice"):
        async with session_factory() as s:
            user = User(email=f"{name}-{uuid.uuid4().hex[:8]}@example.com", display_name=name)
            s.add(user)
            await s.commit()
            await s.refresh(user)
        return user, {"Authorization": f"Bearer {create_jwt(user.id)}"}

    return _make


@pytest.fixture
def make_team(session_factory):
    """Create a team with the given {user_id: role} members."""

    async def _make(members: dict, name: str = "Platform"):
        async with session_factory() as s:
            team = Team(name=name)
            s.add(team)
            await s.flush()
            for user_id, role in members.items():
                s.add(TeamMember(team_id=team.id, user_id=user_id, role=role))
            await s.commit()
            await s.refresh(team)
        return team

    return _make
