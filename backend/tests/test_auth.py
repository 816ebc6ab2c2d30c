"""Tests for authentication endpoints."""
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient, ASGITransport

from app.core.security import create_access_token
from app.db.session import get_session
from app.main import app
from app.models.user import Role


# ─── Fixtures ─────────────────────────────────────────────────────────────────

class FakeUser:
    """Minimal user stub returned by DB mock."""

    def __init__(self, role: Role = Role.admin, is_active: bool = True):
        self.id = uuid.UUID("f96955d0-752f-4e0c-b1dc-d26d8dd1460e")
        self.company_id = uuid.UUID("0b6f3c9e-2f1d-4f57-9a53-4b1e2f3d0c11")
        self.email = "admin@example.com"
        self.first_name = "Admin"
        self.last_name = "User"
        self.role = role
        self.manager_id = None
        self.is_manager_approver = False
        self.is_active = is_active
        self.deleted_at = None
        self.password_hash = "$2b$12$placeholder"  # will be mocked


def make_session_override(user):
    mock_result = MagicMock()
    mock_result.scalar_one_or_none.return_value = user

    mock_session = AsyncMock()
    mock_session.execute = AsyncMock(return_value=mock_result)
    mock_session.add = MagicMock()
    mock_session.commit = AsyncMock()

    async def _override():
        yield mock_session
    return _override, mock_session


# ─── Login Tests ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_login_valid_credentials_returns_jwt():
    """POST /api/v1/auth/login with valid credentials should return access_token."""
    override, mock_session = make_session_override(FakeUser())

    with patch("app.api.v1.auth.verify_password", return_value=True):
        app.dependency_overrides[get_session] = override
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                response = await client.post(
                    "/api/v1/auth/login",
                    data={"username": "admin@example.com", "password": "changeme123"},
                )
        finally:
            app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"
    mock_session.add.assert_called_once()  # login audit entry
    mock_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_login_invalid_credentials_returns_401():
    """POST /api/v1/auth/login with an unknown email should return 401."""
    override, _ = make_session_override(None)

    app.dependency_overrides[get_session] = override
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                "/api/v1/auth/login",
                data={"username": "wrong@example.com", "password": "badpass"},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_disabled_account_returns_403():
    override, _ = make_session_override(FakeUser(is_active=False))

    with patch("app.api.v1.auth.verify_password", return_value=True):
        app.dependency_overrides[get_session] = override
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                response = await client.post(
                    "/api/v1/auth/login",
                    data={"username": "admin@example.com", "password": "changeme123"},
                )
        finally:
            app.dependency_overrides.clear()

    assert response.status_code == 403


# ─── /me Tests ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_me_with_valid_token_returns_user():
    """GET /api/v1/auth/me with valid Bearer token should return user data."""
    fake_user = FakeUser(role=Role.manager)
    token = create_access_token(
        subject=str(fake_user.id), role=fake_user.role.value, company_id=str(fake_user.company_id)
    )
    override, _ = make_session_override(fake_user)

    app.dependency_overrides[get_session] = override
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(
                "/api/v1/auth/me",
                headers={"Authorization": f"Bearer {token}"},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "admin@example.com"
    assert data["role"] == "manager"
    assert data["company_id"] == str(fake_user.company_id)


@pytest.mark.asyncio
async def test_me_without_token_returns_401():
    """GET /api/v1/auth/me without Authorization header should return 401."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_with_garbage_token_returns_401():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
