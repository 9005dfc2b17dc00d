"""
Tests for the structured error responses.
"""
from fastapi.testclient import TestClient

from main import app
from app.services import PolicyService


class TestErrorBodies:
    """Every failure carries the same body and a trace id."""

    def test_not_found_body(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/claims/9999", headers=auth_headers)

        assert response.status_code == 404
        data = response.json()
        assert set(data) >= {"status", "error", "message", "traceId", "timestamp"}
        assert data["status"] == 404
        assert data["resource"] == "Claim"
        assert data["identifier"] == "9999"

    def test_trace_id_matches_correlation_header(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/policies/9999", headers=auth_headers)

        assert response.json()["traceId"] == response.headers["X-Correlation-ID"]

    def test_each_request_gets_its_own_correlation_id(self, client: TestClient):
        first = client.get("/health")
        second = client.get("/health")
        assert first.headers["X-Correlation-ID"] != second.headers["X-Correlation-ID"]

    def test_unknown_route(self, client: TestClient):
        response = client.get("/api/v1/nothing-here")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_unexpected_error_is_sanitized(self, client: TestClient, auth_headers, monkeypatch):
        """Test internal detail never reaches the caller."""
        def explode(self, policy_id):
            raise RuntimeError("connection string postgres://secret@db leaked")

        monkeypatch.setattr(PolicyService, "get", explode)
        raw_client = TestClient(app, raise_server_exceptions=False)

        response = raw_client.get("/api/v1/policies/1", headers=auth_headers)

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "UnclassifiedError"
        assert "secret" not in data["message"]
        assert data["traceId"]


class TestSecurityHeaders:
    def test_headers_present(self, client: TestClient):
        response = client.get("/")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
