"""
Unit tests for LookupService and LookupIndex.

Run: pytest tests/unit/test_lookup_service.py -v
"""

import pytest

from exceptions import DatabaseError
from services.lookup_service import LookupService
from tests.factories import DEPARTMENTS, LOCALITIES, ORGANIZATIONS, SERVICE_TYPES


@pytest.fixture
def catalogs(mock_db, mock_supabase):
    mock_supabase.set_table_data("departamentos", DEPARTMENTS)
    mock_supabase.set_table_data("localidades", LOCALITIES)
    mock_supabase.set_table_data("organizations", ORGANIZATIONS)
    mock_supabase.set_table_data("service_types", SERVICE_TYPES)
    return mock_supabase


class TestLoadIndex:
    """Tests for LookupService.load_index()"""

    def test_builds_index(self, catalogs):
        index = LookupService().load_index()

        assert len(index.departments) == 4
        assert len(index.localities) == 8
        assert index.departments_by_name["MALDONADO"].id == 3
        assert index.service_types_by_code["Express"].id == "svc-express"

    def test_only_agencies_are_kept(self, catalogs):
        """Should drop organizations that are not agencies."""
        index = LookupService().load_index()

        assert {a.id for a in index.agencies} == {"agency-dac", "agency-turil", "agency-central"}

    def test_only_active_rows_are_queried(self, catalogs):
        LookupService().load_index()

        assert ("eq", "active", True) in catalogs.table_calls["organizations"]
        assert ("eq", "active", True) in catalogs.table_calls["service_types"]

    def test_query_error(self, mock_db, mock_supabase):
        mock_supabase.set_table_error("localidades", Exception("relation does not exist"))

        with pytest.raises(DatabaseError):
            LookupService().load_index()


class TestLookupIndex:
    """Index structure built by LookupIndex.build()"""

    def test_same_name_localities_are_grouped(self, lookup):
        """Should keep both "Centro" localities under one key."""
        centros = lookup.localities_by_name["CENTRO"]

        assert [l.id for l in centros] == [11, 40]

    def test_localities_by_department(self, lookup):
        assert [l.id for l in lookup.localities_by_department[3]] == [30, 31, 32]

    def test_indices_are_read_only(self, lookup):
        with pytest.raises(TypeError):
            lookup.departments_by_name["NUEVO"] = None

    def test_display_names(self, lookup):
        assert lookup.department_name(2) == "Canelones"
        assert lookup.locality_name(21) == "Shangrilá"
        assert lookup.locality_name(None) is None


class TestListOrganizations:
    """Tests for LookupService.list_organizations()"""

    def test_lists_active_organizations_by_name(self, catalogs):
        """Should return every active organization, not only agencies."""
        organizations = LookupService().list_organizations()

        assert [o.id for o in organizations] == [o["id"] for o in ORGANIZATIONS]
        assert organizations[-1].type == "remitente"
        calls = catalogs.table_calls["organizations"]
        assert ("eq", "active", True) in calls
        assert ("order", "name", False) in calls

    def test_query_error(self, mock_db, mock_supabase):
        mock_supabase.set_table_error("organizations", Exception("permission denied"))

        with pytest.raises(DatabaseError):
            LookupService().list_organizations()
