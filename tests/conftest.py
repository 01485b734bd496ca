"""Pytest fixtures for testing"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RECONCILE_BACKOFF_BASE", "0")

import json
from datetime import date
from typing import Any, Callable, Dict, Generator
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from homestay_registry.api.dependencies import get_gateway_registry
from homestay_registry.api.main import create_app
from homestay_registry.domain.inspection import DESIRABLE_CRITERIA, MANDATORY_CRITERIA
from homestay_registry.domain.models import Actor, Role
from homestay_registry.infrastructure.clients.himkosh import HimKoshGateway
from homestay_registry.infrastructure.clients.himkosh_crypto import HimKoshCrypto, parse_pipe_string
from homestay_registry.infrastructure.clients.manual_upi import ManualUpiGateway
from homestay_registry.infrastructure.clients.payu import PayUGateway
from homestay_registry.infrastructure.clients.razorpay import RazorpayGateway
from homestay_registry.infrastructure.clients.registry import GatewayRegistry
from homestay_registry.infrastructure.database.models import Base, User
from homestay_registry.infrastructure.database.repositories import UserRepository
from homestay_registry.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = os.environ["DATABASE_URL"]
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

DISTRICT = "Shimla"
HIMKOSH_TEST_KEY = b"0123456789abcdef"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Independent sessions on the test database, one per simulated request"""
    return TestingSessionLocal


@pytest.fixture
def users(db: Session) -> Dict[str, User]:
    """One user per role in Shimla, plus a second owner and an out-of-district DA"""
    repo = UserRepository(db)
    specs = {
        "owner": ("9816000001", "Asha Thakur", Role.OWNER, DISTRICT),
        "other_owner": ("9816000002", "Ravi Negi", Role.OWNER, DISTRICT),
        "da": ("9418000001", "Shimla Dealing Assistant", Role.DEALING_ASSISTANT, DISTRICT),
        "dtdo": ("9418000002", "Shimla DTDO", Role.DTDO, DISTRICT),
        "district_officer": ("9418000003", "Shimla District Officer", Role.DISTRICT_OFFICER, DISTRICT),
        "state_officer": ("9418000004", "State Tourism Officer", Role.STATE_OFFICER, None),
        "admin": ("9418000005", "Portal Admin", Role.ADMIN, None),
        "kangra_da": ("9418000006", "Kangra Dealing Assistant", Role.DEALING_ASSISTANT, "Kangra"),
    }
    created = {
        key: repo.create(mobile=mobile, full_name=name, role=role.value, district=district)
        for key, (mobile, name, role, district) in specs.items()
    }
    db.commit()
    return created


@pytest.fixture
def auth(users: Dict[str, User]) -> Dict[str, Dict[str, str]]:
    """X-User-Id headers keyed like the users fixture"""
    return {key: {"X-User-Id": str(user.id)} for key, user in users.items()}


@pytest.fixture
def actors(users: Dict[str, User]) -> Dict[str, Actor]:
    return {
        key: Actor(id=user.id, role=Role(user.role), district=user.district, name=user.full_name)
        for key, user in users.items()
    }


class FakeProviders:
    """In-memory stand-ins for the payment providers' HTTP APIs"""

    def __init__(self, crypto: HimKoshCrypto):
        self.crypto = crypto
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.paid_challans: Dict[str, str] = {}
        self.payu_transactions: Dict[str, Dict[str, Any]] = {}
        self.fail_with = None
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with:
            return httpx.Response(self.fail_with)
        if "razorpay" in request.url.host:
            return self._razorpay(request)
        if "himkosh" in request.url.host:
            return self._himkosh(request)
        if "payu" in request.url.host:
            return self._payu(request)
        return httpx.Response(404)

    def _razorpay(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            body = json.loads(request.content)
            order_id = f"order_{len(self.orders) + 1:06d}"
            self.orders[order_id] = {
                "id": order_id,
                "amount": body["amount"],
                "amount_paid": 0,
                "receipt": body["receipt"],
                "status": "created",
            }
            return httpx.Response(200, json=self.orders[order_id])
        order = self.orders.get(request.url.path.rsplit("/", 1)[-1])
        if order is None:
            return httpx.Response(404, json={"error": {"code": "BAD_REQUEST_ERROR"}})
        return httpx.Response(200, json=order)

    def _himkosh(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        fields = parse_pipe_string(self.crypto.decrypt(form["encdata"][0]))
        ref = fields["AppRefNo"]
        if ref in self.paid_challans:
            return httpx.Response(200, text=f"TXN_STAT=1|AppRefNo={ref}|Amount={self.paid_challans[ref]}")
        return httpx.Response(200, text=f"TXN_STAT=0|AppRefNo={ref}")

    def _payu(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        txnid = form["var1"][0]
        details = self.payu_transactions.get(txnid, {"status": "pending"})
        return httpx.Response(200, json={"status": 1, "transaction_details": {txnid: details}})

    def pay_razorpay(self, order_id: str) -> None:
        order = self.orders[order_id]
        order.update(status="paid", amount_paid=order["amount"])

    def signed_callback(self, app_ref_no: str, amount: str, status_cd: str = "1") -> str:
        """Encrypted treasury return payload for the callback endpoint"""
        data = (
            f"EchTxnId=TXN{app_ref_no[-6:]}|BankCIN=CIN0001|Bank=SBI|StatusCd={status_cd}"
            f"|Status={'Completed successfully' if status_cd == '1' else 'Failed'}"
            f"|AppRefNo={app_ref_no}|Amount={amount}|Payment_date=01-10-2026|DeptRefNo=HP-HS"
        )
        return self.crypto.encrypt(f"{data}|checksum={HimKoshCrypto.checksum(data)}")


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders(HimKoshCrypto(key=HIMKOSH_TEST_KEY))


@pytest.fixture
def gateway_registry(providers: FakeProviders) -> GatewayRegistry:
    transport = httpx.MockTransport(providers.handler)
    return GatewayRegistry(
        [
            HimKoshGateway(crypto=providers.crypto, transport=transport),
            RazorpayGateway(key_id="rzp_test_key", key_secret="rzp_test_secret", transport=transport),
            PayUGateway(merchant_key="PAYUKEY", salt="PAYUSALT", transport=transport),
            ManualUpiGateway(),
        ]
    )


@pytest.fixture
def client(db: Session, gateway_registry: GatewayRegistry) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_registry] = lambda: gateway_registry
    return TestClient(app)


@pytest.fixture
def application_data() -> Callable[..., Dict[str, Any]]:
    """Silver, 4 rooms, 1 year, no discounts: total fee 3304.00"""

    def make(**overrides) -> Dict[str, Any]:
        data = {
            "property_name": "Deodar Homestay",
            "address": "Lower Jakhu, Shimla",
            "district": DISTRICT,
            "pincode": "171001",
            "category": "silver",
            "total_rooms": 4,
            "validity_years": 1,
            "room_details": {"double_bed_rooms": 4, "double_bed_room_rate": 2000},
            "owner_name": "Asha Thakur",
            "owner_mobile": "9816000001",
            "owner_gender": "male",
        }
        data.update(overrides)
        return data

    return make


def inspection_report(recommendation: str = "approve", satisfied: bool = True) -> Dict[str, Any]:
    return {
        "actual_inspection_date": date.today().isoformat(),
        "room_count_verified": True,
        "actual_room_count": 4,
        "category_meets_standards": satisfied,
        "mandatory_checklist": {name: True for name in MANDATORY_CRITERIA},
        "desirable_checklist": {name: satisfied for name in DESIRABLE_CRITERIA},
        "overall_satisfactory": satisfied,
        "recommendation": recommendation,
        "detailed_findings": "Rooms, kitchen and fire equipment inspected and found in order.",
    }


class WorkflowDriver:
    """Walks an application through the review workflow over HTTP"""

    def __init__(self, client: TestClient, auth: Dict[str, Dict[str, str]], users: Dict[str, User], application_data):
        self.client = client
        self.auth = auth
        self.users = users
        self.application_data = application_data

    def _ok(self, response, expected=200) -> Dict[str, Any]:
        assert response.status_code == expected, response.text
        return response.json()

    def create(self, owner: str = "owner", submit: bool = True, **overrides) -> Dict[str, Any]:
        body = {**self.application_data(**overrides), "submit": submit}
        return self._ok(self.client.post("/v1/applications", json=body, headers=self.auth[owner]), 201)

    def forward(self, app_id: str) -> Dict[str, Any]:
        self._ok(self.client.post(f"/v1/da/applications/{app_id}/start-scrutiny", headers=self.auth["da"]))
        return self._ok(
            self.client.post(
                f"/v1/da/applications/{app_id}/forward-to-dtdo",
                json={"remarks": "Documents in order"},
                headers=self.auth["da"],
            )
        )

    def accept(self, app_id: str) -> Dict[str, Any]:
        return self._ok(
            self.client.post(
                f"/v1/dtdo/applications/{app_id}/accept",
                json={
                    "remarks": "Schedule site inspection",
                    "inspection_date": date.today().isoformat(),
                    "assigned_to": str(self.users["da"].id),
                },
                headers=self.auth["dtdo"],
            )
        )

    def open_order(self, app_id: str) -> Dict[str, Any]:
        orders = self._ok(self.client.get("/v1/da/inspections", headers=self.auth["da"]))
        return next(o for o in orders if o["application_id"] == app_id and o["status"] == "scheduled")

    def submit_report(self, app_id: str, recommendation: str = "approve", satisfied: bool = True) -> Dict[str, Any]:
        order = self.open_order(app_id)
        return self._ok(
            self.client.post(
                f"/v1/da/inspections/{order['id']}/submit-report",
                json=inspection_report(recommendation, satisfied),
                headers=self.auth["da"],
            ),
            201,
        )

    def approve_report(self, app_id: str) -> Dict[str, Any]:
        return self._ok(
            self.client.post(
                f"/v1/dtdo/inspection-report/{app_id}/approve",
                json={"remarks": "Inspection satisfactory"},
                headers=self.auth["dtdo"],
            )
        )

    def to_payment_pending(self, **overrides) -> Dict[str, Any]:
        app = self.create(**overrides)
        self.forward(app["id"])
        self.accept(app["id"])
        self.submit_report(app["id"])
        return self.approve_report(app["id"])


@pytest.fixture
def flow(client: TestClient, auth, users, application_data) -> WorkflowDriver:
    return WorkflowDriver(client, auth, users, application_data)


@pytest.fixture
def report_payload() -> Callable[..., Dict[str, Any]]:
    """Complete inspection report body; all mandatory criteria met"""
    return inspection_report
