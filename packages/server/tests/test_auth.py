"""
Tests for authentication and HTTP middleware.

Covers:
- JWT creation and decoding
- Bearer token dependency (missing, malformed, expired, unknown user)
- Security headers and request id middleware
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import jwt
import pytest
from httpx import AsyncClient

from app.core.auth import create_jwt, decode_jwt
from app.core.middleware import SECURITY_HEADERS


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    def test_round_trip_subject(self):
        user_id = uuid.uuid4()
        payload = decode_jwt(create_jwt(user_id))
        assert payload["sub"] == str(user_id)
        assert payload["exp"] > payload["iat"]
        assert "jti" in payload

    def test_unique_token_ids(self):
        user_id = uuid.uuid4()
        assert decode_jwt(create_jwt(user_id))["jti"] != decode_jwt(create_jwt(user_id))["jti"]

    def test_expired_token_rejected(self):
        token = create_jwt(uuid.uuid4(), expires_delta=timedelta(seconds=-1))
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_jwt(token)

    def test_tampered_token_rejected(self):
        token = create_jwt(uuid.uuid4())
        with pytest.raises(jwt.PyJWTError):
            decode_jwt(token[:-2] + ("AA" if not token.endswith("AA") else "BB"))


# ---------------------------------------------------------------------------
# Integration: bearer dependency
# ---------------------------------------------------------------------------

class TestBearerAuth:
    @pytest.mark.asyncio
    async def test_missing_header(self, client: AsyncClient):
        resp = await client.get("/api/v1/tasks")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_scheme(self, client: AsyncClient):
        resp = await client.get("/api/v1/tasks", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token(self, client: AsyncClient, make_user):
        user, _ = await make_user()
        token = create_jwt(user.id, expires_delta=timedelta(seconds=-1))
        resp = await client.get("/api/v1/tasks", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient):
        token = create_jwt(uuid.uuid4())
        resp = await client.get("/api/v1/tasks", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "User not found"

    @pytest.mark.asyncio
    async def test_valid_token(self, client: AsyncClient, make_user):
        _, headers = await make_user()
        resp = await client.get("/api/v1/tasks", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == []


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class TestMiddleware:
    @pytest.mark.asyncio
    async def test_security_headers_present(self, client: AsyncClient):
        resp = await client.get("/health")
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers[header] == value

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient):
        resp = await client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client: AsyncClient):
        resp = await client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 32
