from datetime import timedelta
from types import SimpleNamespace

import pytest

from smartcare.auth import create_access_token, decode_token, get_password_hash, verify_password
from smartcare.conftest import PASSWORD, account_payload
from smartcare.dependencies import is_role_allowed
from smartcare.models import UserRole
from smartcare.seed_manager import seed_manager


def test_register_patient_returns_token_and_cookie(client):
    response = client.post("/api/auth/register", json=account_payload("patient", "newpatient"))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["role"] == "patient"
    assert body["data"]["user"]["bloodType"] == "O+"
    assert "passwordHash" not in body["data"]["user"]
    assert body["data"]["token"]
    assert "token" in response.cookies


def test_register_rejects_other_roles(client):
    response = client.post("/api/auth/register", json=account_payload("healthcare_manager", "sneaky"))

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_register_duplicate_email(client, patient):
    payload = account_payload("patient", "other", email=patient.email)
    response = client.post("/api/auth/register", json=payload)

    assert response.status_code == 400
    assert response.json()["message"] == "User with this email or username already exists"


def test_register_weak_password(client):
    response = client.post("/api/auth/register", json=account_payload("patient", "weakling", password="password"))

    assert response.status_code == 400
    assert "uppercase" in response.json()["message"]


def test_register_missing_variant_fields(client):
    payload = account_payload("patient", "nobloodtype")
    del payload["bloodType"]
    response = client.post("/api/auth/register", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert any(error["field"].endswith("bloodType") or error["field"].endswith("blood_type") for error in body["errors"])


def test_login_and_verify(client, patient):
    response = client.post("/api/auth/login", json={"email": patient.email, "password": PASSWORD})
    assert response.status_code == 200
    token = response.json()["data"]["token"]

    verify = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert verify.status_code == 200
    assert verify.json()["data"]["user"]["id"] == patient.id


def test_login_wrong_password(client, patient):
    response = client.post("/api/auth/login", json={"email": patient.email, "password": "Wrong!Pass1"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid credentials"}


def test_login_inactive_account(client, session, patient):
    patient.is_active = False
    session.add(patient)
    session.commit()

    response = client.post("/api/auth/login", json={"email": patient.email, "password": PASSWORD})

    assert response.status_code == 401
    assert response.json()["message"] == "User account is inactive"


def test_cookie_token_is_accepted(client, patient):
    client.post("/api/auth/login", json={"email": patient.email, "password": PASSWORD})

    # TestClient keeps the httpOnly cookie set by login
    response = client.get("/api/auth/verify")

    assert response.status_code == 200


def test_logout_revokes_token(client, patient, auth_headers):
    headers = auth_headers(patient)
    assert client.post("/api/auth/logout", headers=headers).status_code == 200

    response = client.get("/api/auth/verify", headers=headers)

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


def test_missing_token(client):
    response = client.get("/api/auth/verify")

    assert response.status_code == 401
    assert response.json()["message"] == "No token provided"


def test_expired_token(client, patient):
    token = create_access_token({"sub": str(patient.id), "role": patient.role}, expires_delta=timedelta(seconds=-5))

    response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


def test_token_for_deleted_user(client, session, patient, auth_headers):
    headers = auth_headers(patient)
    session.delete(patient)
    session.commit()

    response = client.get("/api/auth/verify", headers=headers)

    assert response.status_code == 401
    assert response.json()["message"] == "User not found"


def test_decode_rejects_tampered_token(patient):
    token = create_access_token({"sub": str(patient.id)})

    assert decode_token(token)["sub"] == str(patient.id)
    assert decode_token(token[:-2] + "xx") is None


def test_password_hash_roundtrip():
    hashed = get_password_hash(PASSWORD)

    assert verify_password(PASSWORD, hashed)
    assert not verify_password("nope", hashed)
    assert not verify_password(PASSWORD, "not-a-bcrypt-hash")


@pytest.mark.parametrize("role, allowed, expected", [
    ("patient", ["patient"], True),
    ("Patient", ["patient"], False),
    ("hospital_staff", [UserRole.HOSPITAL_STAFF, UserRole.HEALTHCARE_MANAGER], True),
    ("patient", [UserRole.HEALTHCARE_MANAGER], False),
    (None, ["patient"], False),
    ("", ["patient"], False),
])
def test_is_role_allowed(role, allowed, expected):
    assert is_role_allowed(SimpleNamespace(role=role), allowed) is expected


def test_is_role_allowed_without_identity():
    assert is_role_allowed(None, ["patient"]) is False


def test_role_gate_returns_403(client, patient, auth_headers):
    response = client.get("/api/users", headers=auth_headers(patient))

    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. Insufficient permissions."


def test_security_headers_present(client):
    response = client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_seed_manager_bootstraps_once(client, session):
    user, created = seed_manager(session, "Boss@Example.com", PASSWORD, user_name="boss")
    again, created_again = seed_manager(session, "boss@example.com", PASSWORD, user_name="boss")

    assert created is True and created_again is False
    assert again.id == user.id
    assert user.role == "healthcare_manager"
    login = client.post("/api/auth/login", json={"email": "boss@example.com", "password": PASSWORD})
    assert login.json()["data"]["user"]["role"] == "healthcare_manager"
