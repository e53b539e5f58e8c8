"""
Shared fixtures: an in-memory stand-in for the Supabase query builder and
an authenticated TestClient.
"""

import os
import sys
import uuid
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment before the app modules read it
os.environ["ENVIRONMENT"] = "test"
for var in (
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_ANON_KEY",
    "SUPABASE_JWT_SECRET",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GOOGLE_CLOUD_API_KEY",
):
    os.environ.pop(var, None)

from fastapi.testclient import TestClient

from app.main import app
from app.auth_permissions import AuthContext, get_auth_context, reset_rate_limits
from app import (
    supabase_client,
    auth_routes,
    company_routes,
    customer_routes,
    flow_routes,
    step_routes,
    progress_routes,
    dashboard_routes,
    portal_routes,
    reminder_routes,
    system_routes,
)

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"

PATCHED_MODULES = [
    supabase_client,
    auth_routes,
    company_routes,
    customer_routes,
    flow_routes,
    step_routes,
    progress_routes,
    dashboard_routes,
    portal_routes,
    reminder_routes,
    system_routes,
]


# =============================================================================
# FAKE SUPABASE
# =============================================================================

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Supports the subset of the PostgREST builder the app uses."""

    def __init__(self, store, table_name):
        self.store = store
        self.table_name = table_name
        self.operation = "select"
        self.payload = None
        self.filters = []
        self.ordering = []
        self.row_limit = None

    # Operations
    def select(self, *columns):
        self.operation = "select"
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # Modifiers
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = set(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        rows = self.store.setdefault(self.table_name, [])

        if self.operation == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in items:
                row = dict(item)
                row.setdefault("id", f"{self.table_name}-{uuid.uuid4().hex[:8]}")
                rows.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        if self.operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    updated.append(dict(row))
            return FakeResponse(updated)

        if self.operation == "delete":
            removed = [dict(r) for r in rows if self._matches(r)]
            self.store[self.table_name] = [r for r in rows if not self._matches(r)]
            return FakeResponse(removed)

        result = [dict(r) for r in rows if self._matches(r)]
        for column, desc in reversed(self.ordering):
            result.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self.row_limit is not None:
            result = result[:self.row_limit]
        return FakeResponse(result)


class FakeSupabase:
    def __init__(self):
        self.store = {}
        self.functions = MagicMock()
        self.auth = MagicMock()

    def table(self, name):
        return FakeQuery(self.store, name)

    def rows(self, name):
        return self.store.get(name, [])

    def add(self, table, /, **row):
        row.setdefault("id", f"{table}-{uuid.uuid4().hex[:8]}")
        self.store.setdefault(table, []).append(row)
        return row


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def clean_state():
    reset_rate_limits()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def fake_db(monkeypatch):
    """Route every get_supabase() call to an in-memory fake."""
    fake = FakeSupabase()
    for module in PATCHED_MODULES:
        monkeypatch.setattr(module, "get_supabase", lambda: fake)
    return fake


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_client(client):
    """TestClient authenticated as OWNER_ID."""
    app.dependency_overrides[get_auth_context] = lambda: AuthContext(
        user_id=OWNER_ID,
        email="owner@example.com",
        role="authenticated",
        token="test-token",
    )
    return client


@pytest.fixture
def seeded(fake_db):
    """One company with a three-step flow and two customers."""
    ts = "2024-05-01T00:00:00+00:00"
    company = fake_db.add("companies", user_id=OWNER_ID, name="Acme", domain="acme.test",
                          created_at=ts, updated_at=ts)
    flow = fake_db.add("onboarding_flows", user_id=OWNER_ID, company_id=company["id"],
                       name="Getting started", description="Go live in a week", is_active=True,
                       created_at=ts, updated_at=ts)
    steps = [
        fake_db.add("steps", user_id=OWNER_ID, flow_id=flow["id"], title=title,
                    step_order=i + 1, content=f"How to {title.lower()}", estimated_time="5 min",
                    created_at=ts, updated_at=ts)
        for i, title in enumerate(["Create account", "Connect data", "Invite team"])
    ]
    customers = [
        fake_db.add("customers", user_id=OWNER_ID, company_id=company["id"], email=email,
                    name=name, created_at=ts, updated_at=ts)
        for email, name in [("ana@acme.test", "Ana"), ("ben@acme.test", "Ben")]
    ]
    return {
        "db": fake_db,
        "company": company,
        "flow": flow,
        "steps": steps,
        "customers": customers,
    }
