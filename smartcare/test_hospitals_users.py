import re

import pytest

from smartcare.conftest import account_payload

HOSPITAL_PAYLOAD = {
    "name": "Galle Private Hospital",
    "address": {"street": "Wakwella Rd", "city": "Galle"},
    "type": "private",
    "capacity": {"totalBeds": 120, "occupiedBeds": 40},
    "contactInfo": {"phone": "+94912222222", "email": "info@galle.example.com"},
    "specializations": ["Pediatrics"],
    "facilities": ["pharmacy", "laboratory"],
}


@pytest.fixture
def create_hospital(client, auth_headers, manager):
    def _create_hospital(**overrides):
        return client.post("/api/hospitals", json={**HOSPITAL_PAYLOAD, **overrides}, headers=auth_headers(manager))
    return _create_hospital


# Hospitals
def test_manager_creates_hospital(create_hospital):
    response = create_hospital()

    assert response.status_code == 201
    hospital = response.json()["data"]["hospital"]
    assert re.fullmatch(r"HOSP\d{6}", hospital["hospitalID"])
    assert hospital["type"] == "private"
    assert hospital["capacity"]["occupiedBeds"] == 40
    assert hospital["isActive"] is True


def test_hospital_ids_are_sequential(create_hospital, hospital):
    first = create_hospital().json()["data"]["hospital"]["hospitalID"]
    second = create_hospital(name="Matara Base Hospital").json()["data"]["hospital"]["hospitalID"]

    assert hospital.hospital_id == "HOSP000001"
    assert (first, second) == ("HOSP000002", "HOSP000003")


def test_only_managers_create_hospitals(client, auth_headers, staff):
    response = client.post("/api/hospitals", json=HOSPITAL_PAYLOAD, headers=auth_headers(staff))

    assert response.status_code == 403


def test_occupied_beds_cannot_exceed_total(create_hospital):
    response = create_hospital(capacity={"totalBeds": 10, "occupiedBeds": 11})

    assert response.status_code == 400
    assert "Occupied beds cannot exceed total beds" in [e["message"] for e in response.json()["errors"]]


def test_unknown_hospital_type(create_hospital):
    assert create_hospital(type="floating").status_code == 400


def test_list_filters(client, create_hospital, hospital, auth_headers, patient):
    create_hospital()
    headers = auth_headers(patient)

    everything = client.get("/api/hospitals", headers=headers).json()["data"]
    private = client.get("/api/hospitals", params={"type": "private"}, headers=headers).json()["data"]
    in_colombo = client.get("/api/hospitals", params={"city": "colombo"}, headers=headers).json()["data"]
    neuro = client.get("/api/hospitals", params={"specialization": "Neurology"}, headers=headers).json()["data"]

    assert [h["name"] for h in everything["hospitals"]] == ["Colombo General", "Galle Private Hospital"]
    assert everything["pagination"]["totalItems"] == 2
    assert [h["name"] for h in private["hospitals"]] == ["Galle Private Hospital"]
    assert [h["name"] for h in in_colombo["hospitals"]] == ["Colombo General"]
    assert [h["name"] for h in neuro["hospitals"]] == ["Colombo General"]


def test_update_hospital(client, hospital, auth_headers, manager):
    response = client.put(
        f"/api/hospitals/{hospital.id}",
        json={"name": "National Hospital Colombo", "capacity": {"totalBeds": 900, "occupiedBeds": 800}},
        headers=auth_headers(manager),
    )

    updated = response.json()["data"]["hospital"]
    assert updated["name"] == "National Hospital Colombo"
    assert updated["capacity"]["totalBeds"] == 900
    assert updated["contactInfo"]["phone"] == "+94112691111"


def test_deactivated_hospital_is_hidden(client, hospital, auth_headers, manager, patient):
    deleted = client.delete(f"/api/hospitals/{hospital.id}", headers=auth_headers(manager))

    assert deleted.json()["message"] == "Hospital deactivated successfully"
    assert client.get(f"/api/hospitals/{hospital.id}", headers=auth_headers(patient)).status_code == 404
    assert client.get("/api/hospitals", headers=auth_headers(patient)).json()["data"]["hospitals"] == []


def test_hospital_doctors(client, session, hospital, doctor, make_user, auth_headers, patient):
    make_user("healthcare_professional", "doctor2", hospitalID=hospital.id, specialization="Neurology")
    make_user("healthcare_professional", "elsewhere")
    busy = make_user("healthcare_professional", "doctor3", hospitalID=hospital.id, isAvailable=False)

    url = f"/api/hospitals/{hospital.id}/doctors"
    headers = auth_headers(patient)
    everyone = client.get(url, headers=headers).json()["data"]
    cardiology = client.get(url, params={"specialization": "Cardiology"}, headers=headers).json()["data"]
    available = client.get(url, params={"available": "true"}, headers=headers).json()["data"]

    assert everyone["hospital"]["name"] == "Colombo General"
    assert [d["userName"] for d in everyone["doctors"]] == ["doctor1", "doctor3", "doctor2"]
    assert "passwordHash" not in everyone["doctors"][0]
    assert [d["userName"] for d in cardiology["doctors"]] == ["doctor1", "doctor3"]
    assert busy.id not in [d["id"] for d in available["doctors"]]


def test_specialization_list(client, doctor, make_user, auth_headers, patient):
    make_user("healthcare_professional", "doctor2", specialization="Neurology")

    response = client.get("/api/hospitals/specializations/list", headers=auth_headers(patient))

    assert response.json()["data"]["specializations"] == ["Cardiology", "Neurology"]


# Users
def test_staff_lists_users(client, auth_headers, staff, patient, doctor):
    response = client.get("/api/users", params={"role": "patient"}, headers=auth_headers(staff))

    users = response.json()["data"]["users"]
    assert [u["userName"] for u in users] == ["patient1"]
    assert users[0]["bloodType"] == "O+"
    assert "passwordHash" not in users[0]


def test_patients_cannot_list_users(client, auth_headers, patient):
    assert client.get("/api/users", headers=auth_headers(patient)).status_code == 403


def test_user_search_and_pagination(client, auth_headers, manager, make_user):
    for n in range(5):
        make_user("patient", f"kamal{n}")
    make_user("patient", "nimal")
    headers = auth_headers(manager)

    found = client.get("/api/users", params={"search": "KAMAL", "limit": 2, "page": 2, "sort": "userName"}, headers=headers).json()["data"]

    assert [u["userName"] for u in found["users"]] == ["kamal2", "kamal3"]
    assert found["pagination"] == {"currentPage": 2, "totalPages": 3, "totalItems": 5, "itemsPerPage": 2}
    assert client.get("/api/users", params={"sort": "password"}, headers=headers).status_code == 400


def test_get_user_scoping(client, auth_headers, patient, make_user, staff):
    other = make_user("patient", "patient2")

    assert client.get(f"/api/users/{patient.id}", headers=auth_headers(patient)).status_code == 200
    assert client.get(f"/api/users/{other.id}", headers=auth_headers(patient)).status_code == 403
    assert client.get(f"/api/users/{other.id}", headers=auth_headers(staff)).status_code == 200
    assert client.get("/api/users/9999", headers=auth_headers(staff)).status_code == 404


@pytest.mark.parametrize("role, name, field, value", [
    ("healthcare_professional", "newdoc", "licenseNumber", "LIC-newdoc"),
    ("hospital_staff", "newstaff", "employeeID", "EMP-newstaff"),
    ("healthcare_manager", "newmanager", "role", "healthcare_manager"),
])
def test_manager_creates_any_role(client, auth_headers, manager, role, name, field, value):
    response = client.post("/api/users", json=account_payload(role, name), headers=auth_headers(manager))

    assert response.status_code == 201
    assert response.json()["data"]["user"][field] == value


def test_duplicate_license_rejected(client, auth_headers, manager, doctor):
    response = client.post(
        "/api/users",
        json=account_payload("healthcare_professional", "copycat", licenseNumber="LIC-doctor1"),
        headers=auth_headers(manager),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "License number already registered"


def test_doctor_needs_license(client, auth_headers, manager):
    payload = account_payload("healthcare_professional", "nolicense")
    del payload["licenseNumber"]

    assert client.post("/api/users", json=payload, headers=auth_headers(manager)).status_code == 400


def test_update_ignores_role_and_password(client, auth_headers, manager, doctor):
    response = client.put(
        f"/api/users/{doctor.id}",
        json={"role": "healthcare_manager", "password": "Other!Pass9", "consultationFee": 6500, "phone": "+94 71 000 0000"},
        headers=auth_headers(manager),
    )

    assert response.status_code == 200
    updated = response.json()["data"]["user"]
    assert updated["role"] == "healthcare_professional"
    assert updated["consultationFee"] == 6500
    assert updated["licenseNumber"] == "LIC-doctor1"
    assert updated["phone"] == "+94 71 000 0000"
    login = client.post("/api/auth/login", json={"email": doctor.email, "password": "Str0ng!Pass"})
    assert login.status_code == 200


def test_update_rejects_taken_email(client, auth_headers, manager, patient, staff):
    response = client.put(f"/api/users/{patient.id}", json={"email": "staff1@example.com"}, headers=auth_headers(manager))

    assert response.status_code == 400
    assert response.json()["message"] == "User with this email or username already exists"


def test_manager_cannot_delete_self(client, auth_headers, manager, patient):
    assert client.delete(f"/api/users/{manager.id}", headers=auth_headers(manager)).status_code == 400
    assert client.delete(f"/api/users/{patient.id}", headers=auth_headers(manager)).status_code == 200
    assert client.get(f"/api/users/{patient.id}", headers=auth_headers(manager)).status_code == 404


def test_status_toggle_blocks_login(client, auth_headers, manager, patient):
    response = client.patch(f"/api/users/{patient.id}/status", json={"isActive": False}, headers=auth_headers(manager))

    assert response.json()["message"] == "User deactivated successfully"
    assert response.json()["data"]["user"]["isActive"] is False
    login = client.post("/api/auth/login", json={"email": patient.email, "password": "Str0ng!Pass"})
    assert login.status_code == 401
