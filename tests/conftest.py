"""
Shared test fixtures.

Settings require Supabase credentials at import time; dummy values are
set here before any project module is imported.
"""

import os
import sys
from pathlib import Path

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import patch
from datetime import datetime, timezone
from typing import Generator

from models.lookup import LookupIndex
from services.import_run_store import clear_runs
from tests.factories import LookupFactory, FakeShipmentCreator


# ===================
# MOCK SUPABASE CLIENT
# ===================

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data=None, count: int = None):
        self.data = data if data is not None else []
        self.count = count if count is not None else (len(self.data) if isinstance(self.data, list) else 1)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    Filters are not applied; every call is recorded in `calls` so tests
    can assert on the query that was built.
    """

    def __init__(self, data: list = None, count: int = None, calls: list = None, error: Exception = None):
        self._data = data or []
        self._count = count
        self._is_single = False
        self._error = error
        self.calls = calls if calls is not None else []

    def _record(self, *call):
        self.calls.append(call)
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args)

    def insert(self, data):
        # Simulate insert - add id and timestamps
        if isinstance(data, dict):
            data = [data]
        for item in data:
            item.setdefault("id", "test-uuid-123")
            item["created_at"] = _now()
            item["updated_at"] = _now()
        self._data = data
        return self._record("insert", data)

    def upsert(self, data, **kwargs):
        if isinstance(data, dict):
            data = [data]
        data = [{"id": "test-uuid-123", **item} for item in data]
        self._data = data
        return self._record("upsert", data, kwargs.get("on_conflict"))

    def update(self, data):
        # Simulate update - merge with existing data; nothing matched stays empty
        self._data = [{**item, **data} for item in self._data]
        return self._record("update", data)

    def delete(self):
        return self._record("delete")

    def eq(self, column, value):
        return self._record("eq", column, value)

    def neq(self, column, value):
        return self._record("neq", column, value)

    def gt(self, column, value):
        return self._record("gt", column, value)

    def is_(self, column, value):
        return self._record("is_", column, value)

    def in_(self, column, values):
        return self._record("in_", column, values)

    def single(self):
        self._is_single = True
        return self

    def maybe_single(self):
        self._is_single = True
        return self

    def order(self, column, **kwargs):
        return self._record("order", column, kwargs.get("desc", False))

    def range(self, start, end):
        return self

    def limit(self, count):
        return self._record("limit", count)

    def execute(self) -> MockSupabaseResponse:
        if self._error is not None:
            raise self._error
        if self._is_single:
            # Return first item or empty for single()
            data = self._data[0] if self._data else None
            return MockSupabaseResponse(
                data=data,
                count=1 if data else 0
            )
        return MockSupabaseResponse(
            data=self._data,
            count=self._count if self._count is not None else len(self._data)
        )


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, data: list = None, count: int = None, calls: list = None, error: Exception = None):
        self._data = data or []
        self._count = count
        self._calls = calls if calls is not None else []
        self._error = error

    def _query(self) -> MockSupabaseQuery:
        return MockSupabaseQuery([dict(row) for row in self._data], self._count, self._calls, self._error)

    def select(self, *args, **kwargs):
        return self._query().select(*args)

    def insert(self, data):
        return self._query().insert(data)

    def upsert(self, data, **kwargs):
        return self._query().upsert(data, **kwargs)

    def update(self, data):
        # For update, pass the existing data so it can be merged
        return self._query().update(data)

    def delete(self):
        return self._query().delete()


class MockRpcCall:
    """Pending RPC call; execute() returns the configured response."""

    def __init__(self, data=None, error: Exception = None):
        self._data = data
        self._error = error

    def execute(self) -> MockSupabaseResponse:
        if self._error is not None:
            raise self._error
        return MockSupabaseResponse(data=self._data)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables = {}
        self._rpcs = {}
        self.table_calls: dict[str, list] = {}
        self.rpc_calls: list[tuple[str, dict]] = []

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "count": count, "error": None}

    def set_table_error(self, table_name: str, error: Exception):
        """Make every query on a table raise."""
        self._tables[table_name] = {"data": [], "count": None, "error": error}

    def set_rpc_response(self, name: str, data=None, error: Exception = None):
        """Configure the result (or error) of an RPC."""
        self._rpcs[name] = {"data": data, "error": error}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "count": None, "error": None})
        calls = self.table_calls.setdefault(name, [])
        return MockSupabaseTable(config["data"], config["count"], calls, config["error"])

    def rpc(self, name: str, params: dict) -> MockRpcCall:
        self.rpc_calls.append((name, params))
        config = self._rpcs.get(name, {"data": None, "error": None})
        return MockRpcCall(config["data"], config["error"])


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("departamentos", [
                {"id": 1, "name": "Montevideo"}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock for every service.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("shipments", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.lookup_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.dedup_service.get_supabase_client", return_value=mock_supabase):
                with patch("services.shipment_create_service.get_supabase_client", return_value=mock_supabase):
                    with patch("services.template_service.get_supabase_client", return_value=mock_supabase):
                        yield mock_supabase


@pytest.fixture
def lookup() -> LookupIndex:
    """Catalog snapshot with an ambiguous "Centro" and an accented "Shangrilá"."""
    return LookupFactory.create()


@pytest.fixture
def fake_creator() -> FakeShipmentCreator:
    return FakeShipmentCreator()


@pytest.fixture(autouse=True)
def clean_run_store():
    """Each test starts with an empty import run store."""
    clear_runs()
    yield
    clear_runs()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
