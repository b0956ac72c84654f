"""
Tests for /api/admin auth account endpoints.
"""
import asyncio
import threading

import httpx
import pytest
from postgrest.exceptions import APIError

from conftest import FakeEnsureAuthFunction, make_query_chain
from main import app
from api.dependencies import get_account_sync_invoker, get_current_admin_role, get_supabase_service
from services.admin_role import AdminRole

AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def as_role():
    def _set(role: AdminRole):
        async def override():
            return role
        app.dependency_overrides[get_current_admin_role] = override
    return _set


@pytest.fixture
def fake_function():
    return FakeEnsureAuthFunction({"a@x.com": None, "b@x.com": "id-b", "c@x.com": None})


@pytest.fixture
def with_invoker(make_invoker):
    def _set(handler):
        invoker = make_invoker(handler)
        app.dependency_overrides[get_account_sync_invoker] = lambda: invoker
        return invoker
    return _set


@pytest.fixture
def with_service_client(mock_supabase):
    app.dependency_overrides[get_supabase_service] = lambda: mock_supabase
    return mock_supabase


class TestRoleEndpoint:

    def test_reports_role_flags(self, client, as_role):
        as_role(AdminRole.VIEW_ONLY)
        response = client.get("/api/admin/role", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "role": "view_only",
            "is_admin": False,
            "is_view_only": True,
            "has_admin_access": True,
        }

    def test_missing_token_is_401(self, client):
        response = client.get("/api/admin/role")
        assert response.status_code == 401


class TestSyncEndpoint:

    def test_unscoped_sync(self, client, as_role, with_invoker, fake_function):
        as_role(AdminRole.ADMIN)
        with_invoker(fake_function)

        response = client.post("/api/admin/auth-accounts/sync", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["successful"] == 2
        assert {r["email"] for r in data["results"]} == {"a@x.com", "c@x.com"}
        assert data["action_counts"] == {"created": 2}
        assert data["requires_inspection"] is False
        assert data["success_rate"] == 100.0

    def test_scoped_sync_repeated(self, client, as_role, with_invoker, fake_function):
        as_role(AdminRole.ADMIN)
        with_invoker(fake_function)

        first = client.post("/api/admin/auth-accounts/sync", json={"single_email": "a@x.com"}, headers=AUTH).json()
        second = client.post("/api/admin/auth-accounts/sync", json={"single_email": "a@x.com"}, headers=AUTH).json()

        assert first["results"][0]["action"] == "created"
        assert second["results"][0]["action"] == "already_exists"
        assert second["results"][0]["auth_user_id"] == first["results"][0]["auth_user_id"]

    def test_view_only_cannot_sync(self, client, as_role, with_invoker, fake_function):
        as_role(AdminRole.VIEW_ONLY)
        with_invoker(fake_function)

        response = client.post("/api/admin/auth-accounts/sync", headers=AUTH)

        assert response.status_code == 403
        assert fake_function.requests == []

    def test_invalid_email_is_400(self, client, as_role, with_invoker, fake_function):
        as_role(AdminRole.ADMIN)
        with_invoker(fake_function)

        response = client.post("/api/admin/auth-accounts/sync", json={"single_email": "not-an-email"}, headers=AUTH)

        assert response.status_code == 400
        assert fake_function.requests == []

    def test_partial_failure_is_200(self, client, as_role, with_invoker):
        as_role(AdminRole.ADMIN)
        with_invoker(FakeEnsureAuthFunction({"a@x.com": None}, failing={"a@x.com"}))

        response = client.post("/api/admin/auth-accounts/sync", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["requires_inspection"] is True
        assert data["results"][0]["error"] == "Database error creating new user"

    def test_remote_json_error_surfaces_as_502(self, client, as_role, with_invoker):
        as_role(AdminRole.ADMIN)
        with_invoker(lambda request: httpx.Response(500, json={"error": "Internal server error", "details": "boom"}))

        response = client.post("/api/admin/auth-accounts/sync", headers=AUTH)

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["status_code"] == 500
        assert detail["body"] == {"error": "Internal server error", "details": "boom"}

    def test_undecodable_response_surfaces_raw_text(self, client, as_role, with_invoker):
        as_role(AdminRole.ADMIN)
        with_invoker(lambda request: httpx.Response(200, text="worker boot error"))

        response = client.post("/api/admin/auth-accounts/sync", headers=AUTH)

        assert response.status_code == 502
        assert response.json()["detail"]["raw_body"] == "worker boot error"

    def test_sync_is_rate_limited(self, client, as_role, with_invoker, fake_function):
        as_role(AdminRole.ADMIN)
        with_invoker(fake_function)

        statuses = [client.post("/api/admin/auth-accounts/sync", headers=AUTH).status_code for _ in range(4)]

        assert statuses[:3] == [200, 200, 200]
        assert statuses[3] == 429

    @pytest.mark.asyncio
    async def test_sync_does_not_block_other_requests(self, client, as_role, with_invoker):
        as_role(AdminRole.ADMIN)
        health_served = threading.Event()
        fake = FakeEnsureAuthFunction({"a@x.com": None})
        seen = {}

        def slow_function(request):
            seen["health_during_sync"] = health_served.wait(timeout=3)
            return fake(request)

        with_invoker(slow_function)
        transport = httpx.ASGITransport(app=app)

        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            async def health():
                await asyncio.sleep(0.1)
                response = await http.get("/health")
                health_served.set()
                return response

            sync_response, health_response = await asyncio.gather(
                http.post("/api/admin/auth-accounts/sync", headers=AUTH),
                health(),
            )

        assert sync_response.status_code == 200
        assert health_response.status_code == 200
        assert seen["health_during_sync"] is True


class TestVerificationEndpoints:

    def test_pending_users(self, client, as_role, with_service_client):
        as_role(AdminRole.VIEW_ONLY)
        with_service_client.table.return_value = make_query_chain([
            {"id": "1", "email": "a@x.com", "auth_user_id": None, "invited": True, "order_submitted": False},
        ])

        response = client.get("/api/admin/auth-accounts/pending", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["users"][0]["email"] == "a@x.com"

    def test_pending_users_db_error_is_500(self, client, as_role, with_service_client):
        as_role(AdminRole.ADMIN)
        with_service_client.table.return_value = make_query_chain(
            error=APIError({"message": "relation users does not exist", "code": "42P01"})
        )

        response = client.get("/api/admin/auth-accounts/pending", headers=AUTH)

        assert response.status_code == 500
        assert "relation users does not exist" in response.json()["detail"]

    def test_status_found(self, client, as_role, with_service_client):
        as_role(AdminRole.ADMIN)
        with_service_client.table.return_value = make_query_chain([{"email": "a@x.com", "auth_user_id": "id-a"}])

        response = client.get("/api/admin/auth-accounts/status", params={"email": "a@x.com"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"email": "a@x.com", "auth_user_id": "id-a", "has_auth": True}

    def test_status_not_found(self, client, as_role, with_service_client):
        as_role(AdminRole.ADMIN)
        response = client.get("/api/admin/auth-accounts/status", params={"email": "ghost@x.com"}, headers=AUTH)
        assert response.status_code == 404

    def test_status_requires_admin_access(self, client, as_role, with_service_client):
        as_role(AdminRole.NONE)
        response = client.get("/api/admin/auth-accounts/status", params={"email": "a@x.com"}, headers=AUTH)
        assert response.status_code == 403
