"""Integration tests for the public listing, officer search and dashboard"""

from fastapi.testclient import TestClient
from homestay_registry.utils.date_utils import utcnow


def approve(client: TestClient, auth, flow, providers, **overrides):
    """Walk an application to approved through a Razorpay payment"""
    app = flow.to_payment_pending(**overrides)
    payment = client.post(
        "/v1/payments", json={"application_id": app["id"], "gateway": "razorpay"}, headers=auth["owner"]
    ).json()
    providers.pay_razorpay(payment["external_ref"])
    client.post(f"/v1/payments/{payment['id']}/reconcile", headers=auth["owner"])
    return client.get(f"/v1/applications/{app['id']}", headers=auth["owner"]).json()


def search(client: TestClient, headers, **filters):
    return client.post("/v1/applications/search", json=filters, headers=headers)


def test_public_properties_lists_approved_only(client: TestClient, auth, flow, providers):
    """Test the public listing needs no login and hides unapproved and private data"""
    approved = approve(client, auth, flow, providers)
    flow.create(property_name="Still Under Review")

    response = client.get("/v1/public/properties")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    listed = body["properties"][0]
    assert listed["id"] == approved["id"]
    assert listed["certificate_number"] == approved["certificate_number"]
    assert "owner_mobile" not in listed
    assert "total_fee" not in listed


def test_public_properties_district_filter(client: TestClient, auth, flow, providers):
    approve(client, auth, flow, providers)

    assert client.get("/v1/public/properties", params={"district": "shimla"}).json()["count"] == 1
    assert client.get("/v1/public/properties", params={"district": "Kangra"}).json()["count"] == 0


def test_search_by_application_number(client: TestClient, auth, flow):
    """Test partial numbers match within the officer's district only"""
    app = flow.create()
    suffix = app["application_number"].rsplit("-", 1)[1]

    found = search(client, auth["da"], application_number=suffix).json()
    assert [a["id"] for a in found["applications"]] == [app["id"]]

    assert search(client, auth["kangra_da"], application_number=suffix).json()["count"] == 0
    assert search(client, auth["state_officer"], application_number=suffix).json()["count"] == 1


def test_search_by_owner_identity(client: TestClient, auth, flow, users, db):
    """Test mobile matches the application and Aadhaar matches the owner account"""
    mine = flow.create()
    flow.create(owner="other_owner", owner_mobile="9816000002")
    users["owner"].aadhaar_number = "123412341234"
    db.commit()

    by_mobile = search(client, auth["dtdo"], owner_mobile="9816000002").json()
    assert by_mobile["count"] == 1
    assert by_mobile["applications"][0]["owner_mobile"] == "9816000002"

    by_aadhaar = search(client, auth["dtdo"], owner_aadhaar="123412341234").json()
    assert [a["id"] for a in by_aadhaar["applications"]] == [mine["id"]]


def test_search_by_period(client: TestClient, auth, flow):
    """Test month and year narrow by creation date and a date range overrides them"""
    app = flow.create()
    today = utcnow().date()

    this_month = search(client, auth["da"], month=today.month, year=today.year).json()
    assert [a["id"] for a in this_month["applications"]] == [app["id"]]
    assert search(client, auth["da"], year=2001).json()["count"] == 0

    ranged = search(client, auth["da"], year=2001, from_date=today.isoformat(), to_date=today.isoformat()).json()
    assert ranged["count"] == 1


def test_search_excludes_drafts(client: TestClient, auth, flow):
    flow.create(submit=False)
    assert search(client, auth["da"], owner_mobile="9816000001").json()["count"] == 0


def test_search_needs_a_filter(client: TestClient, auth):
    """Test an empty or blank search is refused"""
    assert search(client, auth["da"]).status_code == 422
    assert search(client, auth["da"], application_number="  ").status_code == 422


def test_search_rejects_inverted_range(client: TestClient, auth):
    response = search(client, auth["da"], from_date="2026-05-10", to_date="2026-05-01")

    assert response.status_code == 422
    assert response.json()["field"] == "from_date"


def test_search_is_for_officers(client: TestClient, auth):
    assert search(client, auth["owner"], owner_mobile="9816000001").status_code == 403


def test_dashboard_scoped_to_district(client: TestClient, auth, flow, providers):
    """Test district officers see their district and state officers see every district"""
    approve(client, auth, flow, providers)
    flow.create(
        category="gold",
        gstin="02ABCDE1234F1Z5",
        room_details={"double_bed_rooms": 4, "double_bed_room_rate": 5000},
    )
    flow.create(owner="other_owner", district="Kangra", owner_mobile="9816000002")

    shimla = client.get("/v1/analytics/dashboard", headers=auth["da"])
    assert shimla.status_code == 200
    data = shimla.json()
    overview = data["overview"]
    assert overview["total"] == 2
    assert overview["by_status"]["approved"] == 1
    assert overview["by_status"]["submitted"] == 1
    assert overview["by_category"] == {"diamond": 0, "gold": 1, "silver": 1}
    assert overview["total_owners"] == 1
    assert overview["avg_processing_days"] >= 0
    assert data["districts"] == {"Shimla": 2}
    assert len(data["recent_applications"]) == 2

    state = client.get("/v1/analytics/dashboard", headers=auth["state_officer"]).json()
    assert state["overview"]["total"] == 3
    assert state["overview"]["total_owners"] == 2
    assert state["districts"] == {"Shimla": 2, "Kangra": 1}


def test_dashboard_empty(client: TestClient, auth):
    """Test an empty registry reports zeros rather than failing"""
    data = client.get("/v1/analytics/dashboard", headers=auth["admin"]).json()

    assert data["overview"]["total"] == 0
    assert data["overview"]["avg_processing_days"] == 0
    assert data["recent_applications"] == []


def test_dashboard_is_for_officers(client: TestClient, auth):
    assert client.get("/v1/analytics/dashboard", headers=auth["owner"]).status_code == 403
