"""
Script to create a local user (and optionally a team they own) and print a
bearer token for trying the API by hand.

    python -m app.scripts.create_local_user --email dev@example.com --team "Platform"
"""

import argparse
import asyncio
from datetime import timedelta
from typing import Optional

import structlog
from sqlmodel import select

from app.core.auth import create_jwt
from app.core.config import get_settings
from app.core.database import get_session_context, init_db
from app.core.logging import configure_logging
from app.models.team import Team, TeamMember
from app.models.user import User
from taskweave_shared.schemas.common import TeamRole

log = structlog.get_logger()


async def create_user(
    email: str,
    display_name: Optional[str],
    team_name: Optional[str],
    create_schema: bool,
    expires_minutes: int,
) -> str:
    if create_schema:
        await init_db()

    async with get_session_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if not user:
            user = User(email=email, display_name=display_name or email.split("@")[0])
            session.add(user)
            await session.flush()
            log.info("local_user.created", email=email, user_id=str(user.id))
        else:
            log.info("local_user.exists", email=email, user_id=str(user.id))

        if team_name:
            team = Team(name=team_name)
            session.add(team)
            await session.flush()
            session.add(TeamMember(team_id=team.id, user_id=user.id, role=TeamRole.OWNER.value))
            log.info("local_team.created", team_id=str(team.id), name=team_name)

        user_id = user.id

    return create_jwt(user_id, expires_delta=timedelta(minutes=expires_minutes))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local user and print a bearer token.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--name", default=None, help="Display name (defaults to the email local part)")
    parser.add_argument("--team", default=None, help="Also create a team owned by the user")
    parser.add_argument("--create-schema", action="store_true", help="Create tables first (dev databases only)")
    parser.add_argument("--expires-minutes", type=int, default=60 * 24, help="Token lifetime")

    args = parser.parse_args()
    settings = get_settings()
    configure_logging(settings.log_level, "text")

    token = asyncio.run(
        create_user(args.email, args.name, args.team, args.create_schema, args.expires_minutes)
    )
    print(token)
