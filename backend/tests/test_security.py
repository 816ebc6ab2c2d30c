"""Security and edge case tests: role gating (OWASP A01) and data exposure."""
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient, ASGITransport

from app.core.deps import get_current_user
from app.core.security import create_access_token, decode_token, hash_password, verify_password
from app.db.session import get_session
from app.main import app
from app.models.user import Role


# ─── Fixtures ─────────────────────────────────────────────────────────────────

class FakeUser:
    """Minimal user stub for dependency overrides."""

    def __init__(self, role: Role = Role.admin, email: str = "admin@example.com"):
        self.id = uuid.UUID("f96955d0-752f-4e0c-b1dc-d26d8dd1460e")
        self.company_id = uuid.UUID("0b6f3c9e-2f1d-4f57-9a53-4b1e2f3d0c11")
        self.email = email
        self.first_name = "Test"
        self.last_name = "User"
        self.role = role
        self.manager_id = None
        self.is_manager_approver = False
        self.is_active = True
        self.deleted_at = None
        self.password_hash = "$2b$12$secret"


def make_mock_session():
    """Return an AsyncMock session with a default empty-result execute."""
    mock_result = MagicMock()
    mock_result.scalar_one_or_none.return_value = None
    mock_result.scalars.return_value.all.return_value = []

    mock_session = AsyncMock()
    mock_session.execute = AsyncMock(return_value=mock_result)
    mock_session.add = MagicMock()
    mock_session.commit = AsyncMock()
    return mock_session


def make_session_override(mock_session):
    async def _override():
        yield mock_session
    return _override


def override_current_user(role: Role):
    async def _override():
        return FakeUser(role=role)
    return _override


# ─── Test: /me endpoint must not return password hash ──────────────────────────

@pytest.mark.asyncio
async def test_me_endpoint_excludes_password_hash():
    """GET /api/v1/auth/me must never return password_hash or password."""
    app.dependency_overrides[get_current_user] = override_current_user(Role.admin)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/auth/me")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert "password" not in body, "password field must not be returned"
    assert "password_hash" not in body, "password_hash field must not be returned"
    assert body["role"] == "admin"


# ─── Test: admin-only endpoints refuse other roles ─────────────────────────────

@pytest.mark.asyncio
@pytest.mark.parametrize("role", [Role.employee, Role.manager])
@pytest.mark.parametrize(
    "method,path,body",
    [
        ("get", "/api/v1/approval-rules", None),
        ("post", "/api/v1/approval-rules", {"name": "r", "rule_type": "percentage", "percentage_required": 50}),
        ("get", "/api/v1/users", None),
        ("post", "/api/v1/expense-categories", {"name": "Travel"}),
    ],
)
async def test_admin_endpoints_require_admin(role, method, path, body):
    app.dependency_overrides[get_session] = make_session_override(make_mock_session())
    app.dependency_overrides[get_current_user] = override_current_user(role)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            if body is None:
                response = await client.request(method, path)
            else:
                response = await client.request(method, path, json=body)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_can_list_rules():
    app.dependency_overrides[get_session] = make_session_override(make_mock_session())
    app.dependency_overrides[get_current_user] = override_current_user(Role.admin)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/approval-rules")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_invalid_rule_configuration_returns_422_with_code():
    """A percentage rule without a threshold is refused before anything is written."""
    mock_session = make_mock_session()
    app.dependency_overrides[get_session] = make_session_override(mock_session)
    app.dependency_overrides[get_current_user] = override_current_user(Role.admin)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                "/api/v1/approval-rules",
                json={"name": "No threshold", "rule_type": "percentage"},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_RULE_CONFIGURATION"
    mock_session.add.assert_not_called()
    mock_session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_rule_with_unresolvable_role_step_is_refused():
    """A step naming a role other than the manager has nobody to route to."""
    mock_session = make_mock_session()
    app.dependency_overrides[get_session] = make_session_override(mock_session)
    app.dependency_overrides[get_current_user] = override_current_user(Role.admin)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                "/api/v1/approval-rules",
                json={
                    "name": "Finance sign-off",
                    "rule_type": "percentage",
                    "percentage_required": 100,
                    "steps": [{"step_order": 1, "approver_role": "Finance"}],
                },
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_RULE_CONFIGURATION"
    mock_session.add.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"rule_type": None}, {"is_hybrid": None}, {"name": None}])
async def test_rule_update_rejects_null_for_required_fields(body):
    mock_session = make_mock_session()
    app.dependency_overrides[get_session] = make_session_override(mock_session)
    app.dependency_overrides[get_current_user] = override_current_user(Role.admin)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.put(f"/api/v1/approval-rules/{uuid.uuid4()}", json=body)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422
    mock_session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_manager_dashboard_refuses_employees():
    app.dependency_overrides[get_current_user] = override_current_user(Role.employee)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/dashboard/manager")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_engine_endpoints_require_auth():
    expense_id = uuid.uuid4()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        responses = [
            await client.get("/api/v1/approvals"),
            await client.post(f"/api/v1/approvals/{expense_id}/approve", json={}),
            await client.post(f"/api/v1/expenses/{expense_id}/submit"),
        ]
    assert [r.status_code for r in responses] == [401, 401, 401]


# ─── Tokens and passwords ─────────────────────────────────────────────────────

def test_access_token_carries_role_and_company():
    company_id = str(uuid.uuid4())
    token = create_access_token(subject="user-1", role="manager", company_id=company_id)
    payload = decode_token(token)
    assert payload["sub"] == "user-1"
    assert payload["role"] == "manager"
    assert payload["company_id"] == company_id
    assert payload["type"] == "access"


def test_password_hash_round_trip():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)
