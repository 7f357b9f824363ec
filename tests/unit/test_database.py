"""
Unit tests for the Supabase client helpers.

Run: pytest tests/unit/test_database.py -v
"""

import pytest
from unittest.mock import patch

from config import database
from exceptions import AppError, DatabaseError


@pytest.fixture
def fresh_client_cache():
    database.get_supabase_client.cache_clear()
    yield
    database.get_supabase_client.cache_clear()


class TestGetSupabaseClient:
    """Tests for get_supabase_client()"""

    def test_creation_failure_is_database_error(self, fresh_client_cache):
        """Should raise the app's DatabaseError, reported as a 500."""
        with patch("config.database.create_client", side_effect=Exception("Invalid API key")):
            with pytest.raises(DatabaseError) as exc_info:
                database.get_supabase_client()

        assert isinstance(exc_info.value, AppError)
        assert exc_info.value.status_code == 500
        assert exc_info.value.details["operation"] == "connect"

    def test_client_is_cached(self, fresh_client_cache):
        with patch("config.database.create_client", return_value=object()) as create:
            first = database.get_supabase_client()
            second = database.get_supabase_client()

        assert first is second
        create.assert_called_once()


class TestCheckConnection:
    """Tests for check_connection()"""

    def test_healthy(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("departamentos", [{"id": 1}], count=19)
        mock_supabase.set_table_data("localidades", [{"id": 10}], count=300)

        status = database.check_connection()

        assert status == {"status": "healthy", "departments_count": 19, "localities_count": 300}

    def test_unhealthy(self, mock_db, mock_supabase):
        """Should report the failure instead of raising."""
        mock_supabase.set_table_error("localidades", Exception("timeout"))

        status = database.check_connection()

        assert status["status"] == "unhealthy"
        assert "timeout" in status["error"]
