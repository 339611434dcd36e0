import os

# Must be in place before smartcare modules read their configuration
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["PAYMENT_GATEWAY_DELAY_SECONDS"] = "0"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REDIS_URL", None)
os.environ.pop("SMTP_HOST", None)

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import SQLModel, Session  # noqa: E402

from smartcare.auth import token_for_user  # noqa: E402
from smartcare.database import engine, create_db_and_tables  # noqa: E402
from smartcare.dependencies import get_payment_gateway, get_notifier  # noqa: E402
from smartcare.main import app  # noqa: E402
from smartcare.models import Hospital  # noqa: E402
from smartcare.routers.users import create_user_account  # noqa: E402
from smartcare.schemas import parse_user_create  # noqa: E402
from smartcare.services.payment_gateway import GatewayOutcome  # noqa: E402
from smartcare.services.sequences import next_hospital_id  # noqa: E402
from smartcare.services.token_blacklist import token_blacklist  # noqa: E402

PASSWORD = "Str0ng!Pass"


class ForcedGateway:
    """Gateway double that approves or declines every payment"""

    def __init__(self, approve: bool = True):
        self.approve = approve
        self.calls = []

    def authorize(self, payment) -> GatewayOutcome:
        self.calls.append(payment.payment_id)
        if self.approve:
            return GatewayOutcome(
                success=True, gateway="test_gateway", status="approved",
                message="Approved", transaction_id=f"GW-TEST-{len(self.calls)}",
            )
        return GatewayOutcome(success=False, gateway="test_gateway", status="declined", message="Declined")


class RecordingNotifier:
    """Notifier double: records every call and answers with a canned result"""

    def __init__(self, result=None):
        self.result = result or {"success": True, "emailSent": True}
        self.sent = []

    def notify(self, kind, entity, session=None):
        self.sent.append((getattr(kind, "value", kind), entity.id))
        return dict(self.result)

    def kinds(self):
        return [kind for kind, _ in self.sent]


def account_payload(role: str, user_name: str, **overrides):
    payload = {
        "role": role,
        "userName": user_name,
        "email": f"{user_name}@example.com",
        "password": PASSWORD,
        "phone": "+94 77 123 4567",
    }
    if role == "patient":
        payload.update({
            "bloodType": "O+",
            "emergencyContact": {"name": "Kin", "relationship": "sibling", "phone": "+94770000000"},
        })
    elif role == "healthcare_professional":
        payload.update({
            "specialization": "Cardiology",
            "licenseNumber": f"LIC-{user_name}",
            "department": "Cardiology",
            "consultationFee": 5000,
        })
    elif role == "hospital_staff":
        payload.update({
            "staffRole": "receptionist",
            "department": "Front Desk",
            "employeeID": f"EMP-{user_name}",
        })
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def database():
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables(engine)
    token_blacklist.clear()
    yield engine


@pytest.fixture
def session(database):
    with Session(database) as session:
        yield session


@pytest.fixture
def gateway():
    return ForcedGateway(approve=True)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(gateway, notifier):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    def _make_user(role: str, user_name: str, **overrides):
        return create_user_account(session, parse_user_create(account_payload(role, user_name, **overrides)))
    return _make_user


@pytest.fixture
def patient(make_user):
    return make_user("patient", "patient1")


@pytest.fixture
def doctor(make_user, hospital):
    return make_user("healthcare_professional", "doctor1", hospitalID=hospital.id)


@pytest.fixture
def staff(make_user):
    return make_user("hospital_staff", "staff1")


@pytest.fixture
def manager(make_user):
    return make_user("healthcare_manager", "manager1")


@pytest.fixture
def hospital(session):
    hospital = Hospital(
        hospital_id=next_hospital_id(session),
        name="Colombo General",
        address={"street": "Regent St", "city": "Colombo", "country": "Sri Lanka"},
        hospital_type="public",
        capacity={"total_beds": 500, "occupied_beds": 120, "icu_beds": 20, "emergency_beds": 30},
        contact_info={"phone": "+94112691111"},
        specializations=["Cardiology", "Neurology"],
    )
    session.add(hospital)
    session.commit()
    session.refresh(hospital)
    return hospital


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return _auth_headers


@pytest.fixture
def tomorrow():
    return date.today() + timedelta(days=1)


@pytest.fixture
def book(client, auth_headers, doctor, hospital, tomorrow):
    """Book through the API as the given user; returns the response"""
    def _book(user, time="10:00", **overrides):
        body = {
            "doctorID": doctor.id,
            "hospitalID": hospital.id,
            "date": tomorrow.isoformat(),
            "time": time,
            **overrides,
        }
        return client.post("/api/appointments", json=body, headers=auth_headers(user))
    return _book
