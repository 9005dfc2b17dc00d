"""
Tests for policy endpoints.
"""
import inspect
from decimal import Decimal

import httpx
from fastapi.testclient import TestClient

from app.api.routes.policies import export_policy
from helpers import undecodable_body


POLICY = {
    "policy_number": "POL-2024-000001",
    "total_premium": "1200.00",
    "effective_date": "2024-01-01",
    "expiry_date": "2024-12-31",
}


def create_policy(client: TestClient, headers: dict, **overrides) -> dict:
    response = client.post("/api/v1/policies", json={**POLICY, **overrides}, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()


class TestPolicyCrud:
    """Create, read and update policies."""

    def test_create_policy(self, client: TestClient, auth_headers, test_user):
        """Test a new policy starts in DRAFT and belongs to the caller."""
        response = client.post("/api/v1/policies", json=POLICY, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert response.headers["Location"] == f"/api/v1/policies/{data['id']}"
        assert data["status"] == "DRAFT"
        assert data["owner_id"] == test_user.id
        assert Decimal(data["total_premium"]) == Decimal("1200.00")
        assert data["is_active"] is False

    def test_create_requires_auth(self, client: TestClient):
        response = client.post("/api/v1/policies", json=POLICY)
        assert response.status_code == 401

    def test_create_invalid_policy(self, client: TestClient, auth_headers):
        """Test every violation comes back in one response."""
        response = client.post(
            "/api/v1/policies",
            json={**POLICY, "policy_number": "12345", "expiry_date": "2023-12-31"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        assert {v["field"] for v in data["violations"]} == {"policy_number", "expiry_date"}

    def test_malformed_body(self, client: TestClient, auth_headers):
        """Test schema errors use the same error body."""
        response = client.post(
            "/api/v1/policies",
            json={**POLICY, "effective_date": "not-a-date"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["violations"][0]["field"] == "effective_date"

    def test_get_policy(self, client: TestClient, auth_headers):
        created = create_policy(client, auth_headers)
        response = client.get(f"/api/v1/policies/{created['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["policy_number"] == "POL-2024-000001"

    def test_get_unknown_policy(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/policies/9999", headers=auth_headers)
        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "NotFoundError"
        assert data["message"] == "Policy not found with id: 9999"

    def test_update_policy(self, client: TestClient, auth_headers):
        created = create_policy(client, auth_headers)
        response = client.put(
            f"/api/v1/policies/{created['id']}",
            json={"version": created["version"], "total_premium": "1350.00"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert Decimal(response.json()["total_premium"]) == Decimal("1350.00")
        assert response.json()["version"] == created["version"] + 1

    def test_stale_update_conflicts(self, client: TestClient, auth_headers):
        """Test the second writer holding an old version gets 409."""
        created = create_policy(client, auth_headers)
        url = f"/api/v1/policies/{created['id']}"

        first = client.put(url, json={"version": created["version"], "total_premium": "1300.00"}, headers=auth_headers)
        second = client.put(url, json={"version": created["version"], "total_premium": "1400.00"}, headers=auth_headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"] == "ConcurrentModificationError"
        assert Decimal(client.get(url, headers=auth_headers).json()["total_premium"]) == Decimal("1300.00")

    def test_list_policies_by_status(self, client: TestClient, auth_headers, active_policy):
        create_policy(client, auth_headers)
        response = client.get("/api/v1/policies", params={"status": "ACTIVE"}, headers=auth_headers)
        assert response.status_code == 200
        assert [p["policy_number"] for p in response.json()] == ["POL-2024-000042"]


class TestPolicyLifecycle:
    """Status transitions are manager operations."""

    def test_activate_and_terminate(self, client: TestClient, auth_headers, manager_headers):
        """Test a DRAFT policy can be activated then terminated mid-term."""
        created = create_policy(client, auth_headers)
        url = f"/api/v1/policies/{created['id']}"

        activated = client.post(f"{url}/activate", headers=manager_headers)
        assert activated.status_code == 200
        assert activated.json()["status"] == "ACTIVE"

        terminated = client.post(f"{url}/terminate", json={"termination_date": "2024-06-15"}, headers=manager_headers)
        assert terminated.status_code == 200
        assert terminated.json()["status"] == "TERMINATED"
        assert terminated.json()["expiry_date"] == "2024-06-15"

    def test_terminate_twice(self, client: TestClient, manager_headers, active_policy):
        url = f"/api/v1/policies/{active_policy.id}/terminate"
        assert client.post(url, json={"termination_date": "2024-06-15"}, headers=manager_headers).status_code == 200

        again = client.post(url, json={"termination_date": "2024-06-15"}, headers=manager_headers)
        assert again.status_code == 400
        data = again.json()
        assert data["error"] == "IllegalStateError"
        assert data["currentStatus"] == "TERMINATED"

    def test_terminate_unknown_policy(self, client: TestClient, manager_headers):
        response = client.post(
            "/api/v1/policies/9999/terminate", json={"termination_date": "2024-06-15"}, headers=manager_headers
        )
        assert response.status_code == 404

    def test_user_cannot_activate(self, client: TestClient, auth_headers):
        created = create_policy(client, auth_headers)
        response = client.post(f"/api/v1/policies/{created['id']}/activate", headers=auth_headers)
        assert response.status_code == 403

    def test_cancel_draft(self, client: TestClient, auth_headers, manager_headers):
        created = create_policy(client, auth_headers)
        response = client.post(f"/api/v1/policies/{created['id']}/cancel", headers=manager_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_expire_lapsed(self, client: TestClient, manager_headers, active_policy):
        response = client.post("/api/v1/policies/expire-lapsed", json={"as_of": "2025-01-01"}, headers=manager_headers)
        assert response.status_code == 200
        assert [p["status"] for p in response.json()] == ["EXPIRED"]

    def test_add_endorsement(self, client: TestClient, auth_headers, active_policy):
        response = client.post(
            f"/api/v1/policies/{active_policy.id}/endorsements",
            json={
                "endorsement_number": "END-0000000001",
                "premium_adjustment": "-200.00",
                "effective_date": "2024-04-01",
                "expiry_date": "2024-12-31",
            },
            headers=auth_headers,
        )
        assert response.status_code == 201

        policy = client.get(f"/api/v1/policies/{active_policy.id}", headers=auth_headers).json()
        assert Decimal(policy["total_premium"]) == Decimal("1000.00")
        assert len(policy["endorsements"]) == 1


class TestPolicyExport:
    """PolicySTAR exports run in the background."""

    def test_export_returns_pending(self, client: TestClient, auth_headers, active_policy, remotes, container):
        remotes["POLICYSTAR"].on("POST", "/export", httpx.Response(200, json={"exportReference": "EXP-1"}))
        remotes["POLICYSTAR"].on("GET", "/status/EXP-1", httpx.Response(200, json={"status": "COMPLETED"}))

        response = client.post(f"/api/v1/policies/{active_policy.id}/export", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "PENDING"
        container.executor.shutdown(wait=True)

    def test_export_wait_completes(self, client: TestClient, auth_headers, active_policy, remotes):
        remotes["POLICYSTAR"].on("POST", "/export", httpx.Response(200, json={"exportReference": "EXP-2"}))
        remotes["POLICYSTAR"].on("GET", "/status/EXP-2", httpx.Response(200, json={"status": "COMPLETED"}))

        response = client.post(
            f"/api/v1/policies/{active_policy.id}/export", params={"wait": True}, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["export_reference"] == "EXP-2"

        exports = client.get(f"/api/v1/policies/{active_policy.id}/exports", headers=auth_headers).json()
        assert [e["status"] for e in exports] == ["COMPLETED"]

    def test_failed_export_keeps_policy_active(self, client: TestClient, auth_headers, active_policy, remotes):
        """Test an unreachable PolicySTAR surfaces as 502 and changes nothing."""
        remotes["POLICYSTAR"].on("POST", "/export", httpx.Response(503))

        response = client.post(
            f"/api/v1/policies/{active_policy.id}/export", params={"wait": True}, headers=auth_headers
        )

        assert response.status_code == 502
        assert response.json()["error"] == "IntegrationUnavailableError"
        policy = client.get(f"/api/v1/policies/{active_policy.id}", headers=auth_headers).json()
        assert policy["status"] == "ACTIVE"
        exports = client.get(f"/api/v1/policies/{active_policy.id}/exports", headers=auth_headers).json()
        assert [e["status"] for e in exports] == ["FAILED"]

    def test_unreadable_export_answer_is_502(self, client: TestClient, auth_headers, active_policy, remotes):
        remotes["POLICYSTAR"].on("POST", "/export", undecodable_body)

        response = client.post(
            f"/api/v1/policies/{active_policy.id}/export", params={"wait": True}, headers=auth_headers
        )

        assert response.status_code == 502
        assert response.json()["error"] == "IntegrationUnavailableError"
        exports = client.get(f"/api/v1/policies/{active_policy.id}/exports", headers=auth_headers).json()
        assert [(e["status"], e["error_kind"]) for e in exports] == [("FAILED", "IntegrationUnavailableError")]

    def test_waiting_export_runs_in_threadpool(self):
        """Blocking on the export and the session must stay off the event loop."""
        assert not inspect.iscoroutinefunction(export_policy)

    def test_export_draft_rejected(self, client: TestClient, auth_headers):
        created = create_policy(client, auth_headers)
        response = client.post(f"/api/v1/policies/{created['id']}/export", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["currentStatus"] == "DRAFT"
