"""
API tests for the import routes.

Services are swapped for instances wired to in-memory collaborators, so
no request reaches Supabase.

Run: pytest tests/test_import_routes.py -v
"""

import pytest
from unittest.mock import MagicMock, patch

from models.resolution import DuplicateCheckResult
from services.dedup_service import DedupGate
from services.import_service import ImportService
from services.lookup_service import LookupService
from services.template_service import TemplateService, compute_header_signature, normalize_headers
from tests.factories import ORGANIZATIONS, STANDARD_HEADERS, RowFactory


MAPPING_JSON = [
    {"sourceHeader": "Nombre", "targetField": "recipient_name"},
    {"sourceHeader": "Teléfono", "targetField": "recipient_phone"},
    {"sourceHeader": "Dirección", "targetField": "recipient_address"},
    {"sourceHeader": "Departamento", "targetField": "department_name"},
    {"sourceHeader": "Localidad", "targetField": "locality_name"},
    {"sourceHeader": "Flete", "targetField": "is_freight_paid"},
    {"sourceHeader": "Agencia", "targetField": "agency_name"},
]


@pytest.fixture
def import_service(lookup, fake_creator):
    service = ImportService(
        lookup_loader=lambda: lookup,
        dedup_gate=DedupGate(checker=lambda *args: DuplicateCheckResult(is_duplicate=False), timeout_seconds=5),
        creator=fake_creator,
        timeout_seconds=5,
    )
    with patch("routes.imports.get_import_service", return_value=service):
        yield service


# ===================
# APP
# ===================

class TestAppEndpoints:
    """Root and health endpoints."""

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["endpoints"]["commit"] == "/api/import/commit"

    def test_health_healthy(self, test_client):
        status = {"status": "healthy", "departments_count": 19, "localities_count": 300}
        with patch("main.check_connection", return_value=status):
            response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_degraded(self, test_client):
        with patch("main.check_connection", return_value={"status": "unhealthy", "error": "down"}):
            response = test_client.get("/health")

        assert response.json()["status"] == "degraded"


# ===================
# UPLOAD & MAPPING
# ===================

class TestParseEndpoint:
    """POST /api/import/parse"""

    def test_parse_csv(self, test_client):
        content = "Nombre;Localidad\nAna;Centro\n".encode("utf-8")

        response = test_client.post(
            "/api/import/parse",
            files={"file": ("envios.csv", content, "text/csv")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["headers"] == ["Nombre", "Localidad"]
        assert data["totalRows"] == 1
        assert data["selectedSheet"] == "Sheet1"

    def test_unsupported_file(self, test_client):
        response = test_client.post(
            "/api/import/parse",
            files={"file": ("envios.pdf", b"%PDF", "application/pdf")},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_FILE"


class TestMappingEndpoint:
    """POST /api/import/mapping"""

    def test_suggests_mapping(self, test_client):
        response = test_client.post("/api/import/mapping", json={"headers": STANDARD_HEADERS})

        assert response.status_code == 200
        data = response.json()
        assert data["mappings"][0] == {
            "sourceHeader": "Nombre",
            "targetField": "recipient_name",
            "transform": None,
            "confidence": 0.8,
        }
        assert data["defaultsSuggested"] == {"service_type": "despacho_agencia"}


# ===================
# PREVIEW & COMMIT
# ===================

class TestPreviewEndpoint:
    """POST /api/import/preview"""

    def test_preview(self, test_client, import_service, fake_creator):
        response = test_client.post("/api/import/preview", json={
            "mappings": MAPPING_JSON,
            "rows": [RowFactory.create(), RowFactory.create(Nombre=None)],
        })

        assert response.status_code == 200
        data = response.json()
        assert data["summary"] == {"total": 2, "ok": 1, "withWarnings": 0, "withErrors": 1}
        assert data["previewRows"][1]["rowIndex"] == 2
        assert "recipient_name" in data["previewRows"][1]["errors"]
        assert fake_creator.calls == []

    def test_preview_without_rows(self, test_client, import_service):
        response = test_client.post("/api/import/preview", json={"mappings": MAPPING_JSON, "rows": []})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_INPUT"


class TestCommitEndpoint:
    """POST /api/import/commit and run retries."""

    def _commit(self, test_client, rows, defaults=None):
        return test_client.post("/api/import/commit", json={
            "rows": rows,
            "mappingFinal": MAPPING_JSON,
            "defaultsChosen": defaults if defaults is not None else {"remitente_org_id": "sender-1"},
        })

    def test_commit(self, test_client, import_service):
        response = self._commit(test_client, RowFactory.create_batch(2))

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["inserted"] == 2
        assert data["results"][0]["status"] == "INSERTED"
        assert data["results"][0]["trackingCode"].startswith("DUY-")
        assert data["runId"]

    def test_missing_sender(self, test_client, import_service, fake_creator):
        """Should reject the whole request without creating anything."""
        response = self._commit(test_client, [RowFactory.create()], defaults={})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "MISSING_REMITENTE"
        assert fake_creator.calls == []

    def test_too_many_rows(self, test_client, import_service):
        rows = [{"Nombre": f"Cliente {i}"} for i in range(501)]

        response = self._commit(test_client, rows)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "TOO_MANY_ROWS"

    def test_get_run_and_retry(self, test_client, import_service, fake_creator):
        fake_creator.fail_on.add("Roto")
        first = self._commit(test_client, [RowFactory.create(Nombre="Roto")]).json()
        fake_creator.fail_on.clear()

        stored = test_client.get(f"/api/import/runs/{first['runId']}")
        retry = test_client.post(f"/api/import/runs/{first['runId']}/retry-failed")

        assert stored.json()["summary"]["failed"] == 1
        assert retry.status_code == 200
        assert retry.json()["parentRunId"] == first["runId"]
        assert retry.json()["results"][0]["status"] == "INSERTED"

    def test_unknown_run(self, test_client, import_service):
        response = test_client.get("/api/import/runs/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "IMPORT_RUN_NOT_FOUND"

    def test_retry_duplicates_without_duplicates(self, test_client, import_service):
        first = self._commit(test_client, [RowFactory.create()]).json()

        response = test_client.post(f"/api/import/runs/{first['runId']}/retry-duplicates")

        assert response.status_code == 422


# ===================
# ORGANIZATIONS, AGENCIES & TEMPLATES
# ===================

class TestOrganizationsEndpoint:
    """GET /api/import/orgs"""

    def test_lists_organizations(self, test_client, mock_db, mock_supabase):
        mock_supabase.set_table_data("organizations", ORGANIZATIONS)

        with patch("routes.imports.get_lookup_service", return_value=LookupService()):
            response = test_client.get("/api/import/orgs")

        assert response.status_code == 200
        organizations = response.json()["organizations"]
        assert len(organizations) == 4
        assert {"id": "sender-1", "name": "Tienda Uno", "type": "remitente"} in organizations

    def test_database_error(self, test_client, mock_db, mock_supabase):
        mock_supabase.set_table_error("organizations", Exception("connection refused"))

        with patch("routes.imports.get_lookup_service", return_value=LookupService()):
            response = test_client.get("/api/import/orgs")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"


class TestAgencySuggestions:
    """GET /api/import/agencies/suggestions"""

    def test_suggestions(self, test_client, lookup):
        lookup_service = MagicMock()
        lookup_service.load_index.return_value = lookup

        with patch("routes.imports.get_lookup_service", return_value=lookup_service):
            response = test_client.get("/api/import/agencies/suggestions", params={"name": "Dak"})

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Dak"
        assert data["suggestions"][0] == {"id": "agency-dac", "name": "DAC"}


class TestTemplateEndpoints:
    """Template CRUD and matching."""

    @pytest.fixture
    def template_service(self, mock_db):
        service = TemplateService()
        with patch("routes.imports.get_template_service", return_value=service):
            yield service

    def test_save(self, test_client, template_service, mock_supabase):
        response = test_client.post("/api/import/templates", json={
            "orgId": "sender-1",
            "name": "Tienda",
            "headers": STANDARD_HEADERS,
            "mapping": MAPPING_JSON,
        })

        assert response.status_code == 201
        assert response.json()["headerSignature"] == compute_header_signature(STANDARD_HEADERS)

    def test_match_exact(self, test_client, template_service, mock_supabase):
        mock_supabase.set_table_data("import_templates", [{
            "id": "tpl-1",
            "org_id": "sender-1",
            "name": "Tienda",
            "header_signature": compute_header_signature(STANDARD_HEADERS),
            "header_signature_sorted": "",
            "normalized_headers": normalize_headers(STANDARD_HEADERS),
            "mapping_json": MAPPING_JSON,
            "defaults_json": {},
        }])

        response = test_client.post("/api/import/templates/match", json={
            "orgId": "sender-1",
            "headers": STANDARD_HEADERS,
        })

        assert response.status_code == 200
        assert response.json()["matchType"] == "exact"
        assert response.json()["template"]["id"] == "tpl-1"

    def test_delete_missing(self, test_client, template_service):
        response = test_client.delete("/api/import/templates/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "IMPORT_TEMPLATE_NOT_FOUND"

    def test_list_requires_org(self, test_client, template_service):
        response = test_client.get("/api/import/templates")

        assert response.status_code == 422
