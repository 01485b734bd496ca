"""Integration tests for concurrent decisions on the same application"""

import asyncio
import threading
import time
from uuid import UUID

import httpx
import pytest
from homestay_registry.config import settings
from homestay_registry.domain.exceptions import ConflictError
from homestay_registry.domain.models import Action
from homestay_registry.infrastructure.database.locks import application_locks
from homestay_registry.infrastructure.database.repositories import ApplicationStore
from homestay_registry.services.orchestrator import ReviewOrchestrator


def test_simultaneous_approvals_apply_once(flow, actors, session_factory, client, auth):
    """Test two officers approving at once: one transition, one conflict"""
    app = flow.create()
    barrier = threading.Barrier(2)
    outcomes = []

    def approve():
        session = session_factory()
        try:
            barrier.wait()
            ReviewOrchestrator(session).review(actors["district_officer"], app["id"], Action.APPROVE, "Approved")
            outcomes.append("applied")
        except ConflictError as e:
            outcomes.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=approve) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert outcomes.count("applied") == 1
    assert len([o for o in outcomes if isinstance(o, ConflictError)]) == 1

    current = client.get(f"/v1/applications/{app['id']}", headers=auth["district_officer"]).json()
    assert current["status"] == "forwarded_to_dtdo"
    timeline = client.get(f"/v1/applications/{app['id']}/timeline", headers=auth["district_officer"]).json()
    assert [entry["action"] for entry in timeline["entries"]].count("approve") == 1


def test_lock_timeout_is_a_conflict(flow, actors, db, client, auth):
    """Test a writer that cannot get the lock fails without side effects"""
    app = flow.create()
    workflow = ReviewOrchestrator(db, store=ApplicationStore(db, lock_timeout=0.05))

    with application_locks.hold(UUID(app["id"]), timeout=1):
        with pytest.raises(ConflictError) as exc_info:
            workflow.start_scrutiny(actors["da"], app["id"])

    assert "retry" in str(exc_info.value)
    current = client.get(f"/v1/applications/{app['id']}", headers=auth["da"]).json()
    assert current["status"] == "submitted"
    assert not application_locks.is_held(UUID(app["id"]))


def test_fee_amounts_survive_the_wire(flow, client, auth):
    """Test money is serialised as exact two-decimal strings"""
    app = flow.create(category="gold", total_rooms=7, validity_years=3, owner_gender="female", is_special_region=True)

    fetched = client.get(f"/v1/applications/{app['id']}", headers=auth["owner"]).json()

    assert fetched["total_fee"] == app["total_fee"]
    assert fetched["total_fee"].count(".") == 1
    assert len(fetched["total_fee"].split(".")[1]) == 2


def test_concurrent_submissions_get_distinct_numbers(flow, actors, session_factory, client, auth):
    """Test two different drafts submitted at once both get their own application number"""
    drafts = [flow.create(submit=False), flow.create(submit=False, property_name="Cedar Cottage")]
    barrier = threading.Barrier(2)
    outcomes = {}

    def submit(app_id):
        session = session_factory()
        try:
            barrier.wait()
            app = ReviewOrchestrator(session).submit_application(actors["owner"], app_id)
            outcomes[app_id] = app.application_number
        except Exception as e:
            outcomes[app_id] = e
        finally:
            session.close()

    threads = [threading.Thread(target=submit, args=(draft["id"],)) for draft in drafts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    numbers = list(outcomes.values())
    assert all(isinstance(n, str) for n in numbers), numbers
    assert len(set(numbers)) == 2
    assert sorted(n.rsplit("-", 1)[1] for n in numbers) == ["000001", "000002"]
    for draft in drafts:
        assert client.get(f"/v1/applications/{draft['id']}", headers=auth["owner"]).json()["status"] == "submitted"


def test_application_numbers_are_sequential(flow):
    """Test submissions draw consecutive numbers from the year series"""
    first = flow.create()
    second = flow.create()

    assert first["application_number"].endswith("-000001")
    assert second["application_number"].endswith("-000002")


@pytest.fixture
def payable(flow):
    return flow.to_payment_pending()


async def test_waiting_for_lock_keeps_server_responsive(payable, client, auth, monkeypatch):
    """Test a request queued behind a busy application does not stall unrelated requests"""
    monkeypatch.setattr(settings, "transition_lock_timeout_seconds", 1.0)
    transport = httpx.ASGITransport(app=client.app)

    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:

        async def health_check():
            await asyncio.sleep(0.2)
            started = time.perf_counter()
            response = await http.get("/health")
            return response, time.perf_counter() - started

        with application_locks.hold(UUID(payable["id"]), timeout=1):
            payment, (health, elapsed) = await asyncio.gather(
                http.post(
                    "/v1/payments",
                    json={"application_id": payable["id"], "gateway": "razorpay"},
                    headers=auth["owner"],
                ),
                health_check(),
            )

    assert health.status_code == 200
    assert elapsed < 0.5
    assert payment.status_code == 409
    assert payment.json()["retryable"] is True
