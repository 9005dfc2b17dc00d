"""
Tests for the liveness and readiness probes.
"""
import httpx
from sqlalchemy.exc import OperationalError
from fastapi.testclient import TestClient


class TestHealth:
    def test_liveness(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "UP"

    def test_readiness_lists_integrations(self, client: TestClient):
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["database"] == "UP"
        assert {i["name"] for i in data["integrations"]} == {"POLICYSTAR", "RMV", "SPEEDPAY", "CLUE"}

    def test_readiness_reports_last_integration_error(
        self, client: TestClient, auth_headers, test_claim, remotes
    ):
        remotes["CLUE"].on("GET", "/history/POL-2024-000042", httpx.Response(503))
        client.get(f"/api/v1/claims/{test_claim.id}/history", headers=auth_headers)

        integrations = {i["name"]: i for i in client.get("/health/ready").json()["integrations"]}
        assert integrations["CLUE"]["lastFailureAt"] is not None
        assert integrations["CLUE"]["lastError"]
        assert integrations["RMV"]["lastError"] is None

    def test_readiness_database_down(self, client: TestClient, container):
        def unreachable():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        container.session_factory = unreachable
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["database"] == "DOWN"
