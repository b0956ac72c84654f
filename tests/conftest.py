"""
Pytest configuration and fixtures for the auth sync tests.

Sets environment variables before importing the app and provides an
in-memory stand-in for the ensure-auth-account edge function, served
through httpx.MockTransport so no test touches the network.
"""
import json
import os
import uuid
from typing import Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

TEST_SUPABASE_URL = "https://test.supabase.co"
TEST_ANON_KEY = "anon-" + "a" * 60
TEST_SERVICE_KEY = "service-" + "s" * 60

# Set environment variables before importing main
os.environ["SUPABASE_URL"] = TEST_SUPABASE_URL
os.environ["SUPABASE_ANON_KEY"] = TEST_ANON_KEY
os.environ["SUPABASE_SERVICE_KEY"] = TEST_SERVICE_KEY
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["RATE_LIMIT_SYNC"] = "3/minute"

from main import app
from api.dependencies import reset_caches_for_testing
from services.account_sync import AccountSyncInvoker, SyncSettings


class FakeEnsureAuthFunction:
    """
    Behaves like the deployed edge function against an in-memory users table.

    - `{}` processes every user whose auth_user_id is null.
    - `{"single_email": E}` processes exactly E, whatever its state.
    - Existing identities are reported as 'already_exists', never recreated.
    - Emails in `failing` come back with success=False.
    """

    def __init__(self, users: Optional[Dict[str, Optional[str]]] = None, failing=()):
        self.users: Dict[str, Optional[str]] = dict(users or {})
        self.failing = set(failing)
        self.requests: List[httpx.Request] = []
        self.identities_created = 0

    def _process(self, email: str) -> dict:
        if email in self.failing:
            return {"email": email, "success": False, "action": "auth_creation_failed",
                    "error": "Database error creating new user"}
        existing = self.users.get(email)
        if existing:
            return {"email": email, "success": True, "action": "already_exists", "auth_user_id": existing}
        auth_user_id = str(uuid.uuid4())
        self.users[email] = auth_user_id
        self.identities_created += 1
        return {"email": email, "success": True, "action": "created", "auth_user_id": auth_user_id}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content or b"{}")
        single_email = body.get("single_email")

        if single_email is not None:
            if single_email not in self.users:
                return httpx.Response(404, json={"success": False, "error": f"User not found: {single_email}"})
            targets = [single_email]
        else:
            targets = sorted(email for email, auth_id in self.users.items() if auth_id is None)

        results = [self._process(email) for email in targets]
        successful = sum(1 for r in results if r["success"])
        return httpx.Response(200, json={
            "success": True,
            "processed": len(results),
            "successful": successful,
            "errors": len(results) - successful,
            "results": results,
        })


@pytest.fixture
def test_settings() -> SyncSettings:
    return SyncSettings(supabase_url=TEST_SUPABASE_URL, api_key=TEST_ANON_KEY, function_name="create-auth-users")


@pytest.fixture
def make_invoker(test_settings):
    """Factory: invoker whose HTTP traffic goes to `handler`."""
    created = []

    def _make(handler) -> AccountSyncInvoker:
        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        invoker = AccountSyncInvoker(test_settings, http_client=http_client)
        created.append(http_client)
        return invoker

    yield _make
    for http_client in created:
        http_client.close()


class MockSupabaseResponse:
    """Mock response from Supabase queries"""
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def make_query_chain(data=None, error: Optional[Exception] = None):
    """
    MagicMock that supports table().select().eq().is_().order().limit().execute().
    """
    chain = MagicMock()
    for method in ("select", "eq", "is_", "order", "limit", "in_", "neq"):
        getattr(chain, method).return_value = chain
    if error is not None:
        chain.execute.side_effect = error
    else:
        chain.execute.return_value = MockSupabaseResponse(data or [])
    return chain


@pytest.fixture
def mock_supabase():
    """Supabase client mock whose table() returns a configurable chain."""
    mock_client = MagicMock()
    mock_client.table.return_value = make_query_chain([])
    return mock_client


@pytest.fixture
def client():
    """
    TestClient with clean dependency overrides and rate limiter counters.
    """
    from api.rate_limiter import limiter

    # MemoryStorage has no public clear-all; reset() would drop the config
    limiter._storage.storage.clear()
    reset_caches_for_testing()
    app.dependency_overrides.clear()

    yield TestClient(app)

    app.dependency_overrides.clear()
    reset_caches_for_testing()
