"""HTTP tests for the query API, served on an ephemeral port."""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_item, v31_metric
from cvemirror.core.normalizer import normalize
from cvemirror.core.query import QueryExecutor
from cvemirror.monitoring.health_check import HealthChecker
from cvemirror.monitoring.web_interface import create_server
from cvemirror.utils.error_handler import StorageError


def _serve(executor, health_checker=None):
    server = create_server("127.0.0.1", 0, executor, health_checker)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, f"http://127.0.0.1:{server.server_address[1]}"


@pytest.fixture
def api(store, config):
    store.upsert(normalize(make_item(
        cve_id="CVE-2023-9999", published="2022-12-15T00:00:00.000",
        description="Heap overflow in parser", metrics={"cvssMetricV31": [v31_metric(9.8)]},
    )))
    store.upsert(normalize(make_item(
        cve_id="CVE-2024-0001", published="2024-01-10T00:00:00.000",
        description="Reflected XSS",
        metrics={"cvssMetricV2": [{"baseSeverity": "MEDIUM", "cvssData": {"baseScore": 4.3}}]},
    )))
    server, base_url = _serve(QueryExecutor(store), HealthChecker(store, config=config))
    yield base_url
    server.shutdown()
    server.server_close()


class TestSearch:
    def test_lists_records(self, api):
        response = requests.get(f"{api}/api/cves", timeout=5)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["page"] == 1
        assert body["limit"] == 10
        assert [r["id"] for r in body["results"]] == ["CVE-2024-0001", "CVE-2023-9999"]

    def test_filters_and_falls_back_limit(self, api):
        response = requests.get(f"{api}/api/cves", params={"year": "2023", "limit": "7"}, timeout=5)

        body = response.json()
        assert body["limit"] == 10
        assert [r["id"] for r in body["results"]] == ["CVE-2023-9999"]

    def test_invalid_params_give_400_with_details(self, api):
        response = requests.get(f"{api}/api/cves", params={"year": "99", "scoreMin": "11"}, timeout=5)

        assert response.status_code == 400
        assert response.json() == {
            "error": "Invalid query parameters",
            "details": [
                {"field": "year", "message": "year must be YYYY"},
                {"field": "scoreMin", "message": "scoreMin must be between 0 and 10"},
            ],
        }


class TestDetail:
    def test_found(self, api):
        response = requests.get(f"{api}/api/cves/CVE-2024-0001", timeout=5)

        assert response.status_code == 200
        assert response.json()["score"]["v2"] == {"baseScore": 4.3, "severity": "MEDIUM", "vector": "N/A"}

    def test_not_found(self, api):
        response = requests.get(f"{api}/api/cves/CVE-1999-0001", timeout=5)

        assert response.status_code == 404
        assert response.json() == {"error": "CVE not found"}


class TestOperational:
    def test_health(self, api):
        response = requests.get(f"{api}/api/health", timeout=5)

        assert response.status_code in (200, 503)
        assert response.json()["status"] in ("healthy", "degraded", "unhealthy")

    def test_metrics_text(self, api):
        requests.get(f"{api}/api/cves", timeout=5)

        response = requests.get(f"{api}/metrics", timeout=5)

        assert response.status_code == 200
        assert response.headers["Content-Type"].startswith("text/plain")
        assert "queries_total" in response.text

    def test_unknown_path(self, api):
        assert requests.get(f"{api}/nope", timeout=5).status_code == 404


class TestFailures:
    def test_storage_error_is_500(self):
        executor = MagicMock(spec=QueryExecutor)
        executor.search.side_effect = StorageError("database is locked", operation="find")
        server, base_url = _serve(executor)
        try:
            response = requests.get(f"{base_url}/api/cves", timeout=5)
        finally:
            server.shutdown()
            server.server_close()

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
