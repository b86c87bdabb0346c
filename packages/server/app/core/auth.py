"""
Authentication for Taskweave.

Clients send ``Authorization: Bearer <jwt>``. The token's ``sub`` claim is the
user id; the user must still exist. Everything past identity (task and team
permissions) is decided in the service layer.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.models.user import User

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(user_id: uuid.UUID, *, expires_delta: timedelta | None = None) -> str:
    """Create a signed access token for ``user_id``."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for the user behind the current request."""

    def __init__(self, user: User):
        self.user = user
        self.user_id = user.id


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")

    token = authorization[7:].strip()
    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    auth = AuthenticatedUser(user)
    request.state.auth = auth
    structlog.contextvars.bind_contextvars(user_id=str(auth.user_id))
    return auth
