"""Integration tests for the administrator console"""

import pytest
from fastapi.testclient import TestClient
from homestay_registry.config import settings


@pytest.fixture
def production(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")


def test_stats(client: TestClient, auth, flow):
    """Test GET /v1/admin/stats counts applications, users and files"""
    flow.create()
    flow.create(submit=False)

    response = client.get("/v1/admin/stats", headers=auth["admin"])

    assert response.status_code == 200
    stats = response.json()
    assert stats["environment"] == "test"
    assert stats["reset_enabled"] is True
    assert stats["applications"]["total"] == 2
    assert stats["applications"]["by_status"] == {"submitted": 1, "draft": 1}
    assert stats["users"]["total"] == 8
    assert stats["users"]["by_role"]["dealing_assistant"] == 2
    assert stats["files"] == {"total": 0, "total_size": 0}
    assert stats["payments"]["total"] == 0


def test_reset_requires_exact_confirmation(client: TestClient, auth, flow):
    """Test targeted resets need the confirmation word and a reason"""
    flow.create()

    wrong_word = client.post(
        "/v1/admin/reset/applications",
        json={"confirmation_text": "delete", "reason": "Clearing UAT data"},
        headers=auth["admin"],
    )
    assert wrong_word.status_code == 422
    assert wrong_word.json()["field"] == "confirmation_text"

    full_needs_reset = client.post(
        "/v1/admin/reset/full",
        json={"confirmation_text": "DELETE", "reason": "Clearing UAT data"},
        headers=auth["admin"],
    )
    assert full_needs_reset.status_code == 422

    short_reason = client.post(
        "/v1/admin/reset/applications",
        json={"confirmation_text": "DELETE", "reason": "oops"},
        headers=auth["admin"],
    )
    assert short_reason.status_code == 422
    assert short_reason.json()["field"] == "reason"

    unknown = client.post(
        "/v1/admin/reset/everything",
        json={"confirmation_text": "DELETE", "reason": "Clearing UAT data"},
        headers=auth["admin"],
    )
    assert unknown.status_code == 404

    assert client.get("/v1/admin/stats", headers=auth["admin"]).json()["applications"]["total"] == 1


def test_reset_applications(client: TestClient, auth, flow):
    """Test the applications reset removes applications and their children"""
    app = flow.create()

    response = client.post(
        "/v1/admin/reset/applications",
        json={"confirmation_text": "DELETE", "reason": "Clearing UAT data"},
        headers=auth["admin"],
    )

    assert response.status_code == 200
    deleted = response.json()["deleted"]
    assert deleted["homestay_applications"] == 1
    assert deleted["application_timeline"] == 2
    assert client.get(f"/v1/applications/{app['id']}", headers=auth["owner"]).status_code == 404


def test_reset_db_preserves_chosen_groups(client: TestClient, auth, flow):
    """Test reset-db keeps administrators and the groups asked for"""
    flow.create()

    response = client.post(
        "/v1/admin/reset-db",
        json={"preserve_property_owners": True, "preserve_state_officers": True},
        headers=auth["admin"],
    )

    assert response.status_code == 200
    preserved = response.json()["preserved"]
    assert preserved["by_role"] == {"admin": 1, "owner": 2, "state_officer": 1}
    assert preserved["total_users"] == 4
    assert preserved["ddo_codes"] is True
    assert response.json()["deleted"]["users"] == 4
    assert client.get("/v1/applications", headers=auth["owner"]).json()["count"] == 0
    assert client.get("/v1/da/applications", headers=auth["da"]).status_code == 401


def test_destructive_operations_blocked_in_production(client: TestClient, auth, production):
    """Test production refuses resets unless the override is on"""
    body = {"confirmation_text": "DELETE", "reason": "Clearing UAT data"}

    assert client.post("/v1/admin/reset/payments", json=body, headers=auth["admin"]).status_code == 403
    assert client.post("/v1/admin/seed/users", json={"count": 1}, headers=auth["admin"]).status_code == 403
    assert client.get("/v1/admin/stats", headers=auth["admin"]).json()["reset_enabled"] is False

    client.put("/v1/admin/settings/super_console_override", json={"value": True}, headers=auth["admin"])

    assert client.post("/v1/admin/reset/payments", json=body, headers=auth["admin"]).status_code == 200


def test_seed_users(client: TestClient, auth):
    """Test seeding reuses district officers and adds owners"""
    response = client.post("/v1/admin/seed/users", json={"count": 2, "district": "Kullu"}, headers=auth["admin"])

    assert response.status_code == 200
    assert response.json()["created"] == 6

    again = client.post("/v1/admin/seed/users", json={"count": 2, "district": "Kullu"}, headers=auth["admin"])
    assert again.json()["created"] == 6
    assert client.get("/v1/admin/stats", headers=auth["admin"]).json()["users"]["total"] == 8 + 3 + 2


@pytest.mark.parametrize(
    "scenario,status",
    [
        ("pending_da_review", "submitted"),
        ("inspection_backlog", "inspection_scheduled"),
        ("objections_raised", "objection_raised"),
        ("payment_pending", "payment_pending"),
        ("complete_workflow", "approved"),
    ],
)
def test_seed_scenarios(client: TestClient, auth, scenario: str, status: str):
    """Test scenarios drive applications through the real workflow"""
    response = client.post(
        "/v1/admin/seed/scenario",
        json={"count": 2, "scenario": scenario},
        headers=auth["admin"],
    )

    assert response.status_code == 200, response.text
    assert response.json()["statuses"] == [status, status]

    queue = client.get("/v1/applications", headers=auth["district_officer"]).json()
    assert queue["count"] == 2


def test_seeded_certificate(client: TestClient, auth):
    """Test the complete workflow scenario issues certificates"""
    seeded = client.post(
        "/v1/admin/seed/scenario", json={"count": 1, "scenario": "complete_workflow"}, headers=auth["admin"]
    ).json()

    app = client.get(f"/v1/applications/{seeded['application_ids'][0]}", headers=auth["dtdo"]).json()
    assert app["certificate_number"]


def test_seed_validation(client: TestClient, auth):
    """Test seed type, count and scenario are validated"""
    assert client.post("/v1/admin/seed/robots", json={}, headers=auth["admin"]).status_code == 404
    assert client.post("/v1/admin/seed/applications", json={"count": 0}, headers=auth["admin"]).status_code == 422
    assert client.post("/v1/admin/seed/applications", json={"count": 51}, headers=auth["admin"]).status_code == 422

    missing = client.post("/v1/admin/seed/scenario", json={"count": 1}, headers=auth["admin"])
    assert missing.status_code == 422
    assert missing.json()["field"] == "scenario"

    unknown = client.post("/v1/admin/seed/scenario", json={"count": 1, "scenario": "chaos"}, headers=auth["admin"])
    assert unknown.status_code == 422


def test_settings_round_trip(client: TestClient, auth):
    """Test settings read their defaults and accept updates"""
    assert client.get("/v1/admin/settings/enforce_property_category", headers=auth["admin"]).json() == {
        "key": "enforce_property_category",
        "value": False,
    }

    updated = client.put("/v1/admin/settings/enforce_property_category", json={"value": True}, headers=auth["admin"])
    assert updated.json()["value"] is True
    assert client.get("/v1/admin/settings/enforce_property_category", headers=auth["admin"]).json()["value"] is True

    assert client.get("/v1/admin/settings/no_such_setting", headers=auth["admin"]).status_code == 404
    assert client.put("/v1/admin/settings/no_such_setting", json={"value": 1}, headers=auth["admin"]).status_code == 404


def test_category_enforcement_blocks_submission(client: TestClient, auth, flow):
    """Test an unsuitable category only blocks submission once enforcement is on"""
    gold_without_gstin = {"category": "gold", "room_details": {"double_bed_rooms": 4, "double_bed_room_rate": 5000}}
    assert flow.create(**gold_without_gstin)["status"] == "submitted"

    client.put("/v1/admin/settings/enforce_property_category", json={"value": True}, headers=auth["admin"])
    response = client.post(
        "/v1/applications",
        json={**flow.application_data(**gold_without_gstin), "submit": True},
        headers=auth["owner"],
    )

    assert response.status_code == 422
    assert response.json()["field"] == "category"
    assert "GSTIN" in response.json()["error"]


def test_db_console(client: TestClient, auth):
    """Test raw SQL in the test environment"""
    response = client.post(
        "/v1/admin/db-console/execute",
        json={"query": "SELECT role, COUNT(*) AS n FROM users WHERE role = 'admin' GROUP BY role"},
        headers=auth["admin"],
    )

    assert response.status_code == 200
    assert response.json()["rows"] == [{"role": "admin", "n": 1}]

    broken = client.post("/v1/admin/db-console/execute", json={"query": "SELEKT 1"}, headers=auth["admin"])
    assert broken.status_code == 422
    assert broken.json()["field"] == "sql"


def test_db_console_refused_in_production(client: TestClient, auth, production):
    """Test the database console is unavailable outside development and test"""
    client.put("/v1/admin/settings/super_console_override", json={"value": True}, headers=auth["admin"])

    response = client.post("/v1/admin/db-console/execute", json={"query": "SELECT 1"}, headers=auth["admin"])

    assert response.status_code == 403
