import re

import pytest


@pytest.fixture
def create_record(client, auth_headers, doctor, patient, hospital):
    def _create_record(author=None, **overrides):
        payload = {
            "patientID": patient.id,
            "hospitalID": hospital.id,
            "chiefComplaint": "Chest pain on exertion",
            "diagnosis": [{"primary": True, "code": "I20.9", "description": "Angina", "type": "primary"}],
            "treatmentPlan": {"medications": [{"name": "Aspirin", "dosage": "75mg", "frequency": "daily"}]},
            "physicalExamination": {"vitalSigns": {"bloodPressure": "130/85", "heartRate": 82}},
            **overrides,
        }
        return client.post("/api/medical-records", json=payload, headers=auth_headers(author or doctor))
    return _create_record


def actions(record):
    return [entry["action"] for entry in record["accessLog"]]


def test_doctor_creates_record(create_record, doctor, patient):
    response = create_record()

    assert response.status_code == 201
    record = response.json()["data"]["medicalRecord"]
    assert re.fullmatch(r"[0-9a-f-]{36}", record["recordID"])
    assert record["doctorID"] == doctor.id
    assert record["patient"]["id"] == patient.id
    assert record["diagnosis"][0]["type"] == "primary"
    assert record["physicalExamination"]["vitalSigns"]["heartRate"] == 82
    assert actions(record) == ["created"]
    assert record["accessLog"][0]["accessedBy"] == doctor.id


@pytest.mark.parametrize("role, name", [("patient", "patient9"), ("hospital_staff", "staff9")])
def test_only_doctors_create_records(create_record, make_user, role, name):
    author = make_user(role, name)

    assert create_record(author=author).status_code == 403


def test_create_checks_references(create_record, staff):
    assert create_record(patientID=staff.id).json()["message"] == "Patient not found"
    assert create_record(hospitalID=9999).status_code == 404
    assert create_record(appointmentID=9999).json()["message"] == "Appointment not found"


def test_chief_complaint_required(create_record):
    response = create_record(chiefComplaint="")

    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


def test_access_log_sequence(client, create_record, auth_headers, doctor, patient):
    record = create_record().json()["data"]["medicalRecord"]
    url = f"/api/medical-records/{record['id']}"

    client.get(url, headers=auth_headers(patient))
    client.put(url, json={"chiefComplaint": "Chest pain at rest"}, headers=auth_headers(doctor))
    fetched = client.get(url, headers=auth_headers(doctor)).json()["data"]["medicalRecord"]

    assert fetched["chiefComplaint"] == "Chest pain at rest"
    assert actions(fetched) == ["created", "viewed", "edited", "viewed"]
    assert [e["accessedBy"] for e in fetched["accessLog"]] == [doctor.id, patient.id, doctor.id, doctor.id]


def test_listing_does_not_log(client, create_record, auth_headers, patient):
    record = create_record().json()["data"]["medicalRecord"]

    listed = client.get("/api/medical-records", headers=auth_headers(patient)).json()["data"]

    assert [r["id"] for r in listed["medicalRecords"]] == [record["id"]]
    assert actions(listed["medicalRecords"][0]) == ["created"]


def test_record_visibility(client, create_record, auth_headers, make_user, staff, hospital):
    record = create_record().json()["data"]["medicalRecord"]
    url = f"/api/medical-records/{record['id']}"
    stranger = make_user("patient", "stranger")
    other_doctor = make_user("healthcare_professional", "doctor2", hospitalID=hospital.id)

    assert client.get(url, headers=auth_headers(staff)).status_code == 200
    assert client.get(url, headers=auth_headers(stranger)).status_code == 403
    assert client.get(url, headers=auth_headers(other_doctor)).status_code == 403
    assert client.get("/api/medical-records", headers=auth_headers(stranger)).json()["data"]["medicalRecords"] == []


def test_staff_cannot_edit(client, create_record, auth_headers, staff):
    record = create_record().json()["data"]["medicalRecord"]

    response = client.put(f"/api/medical-records/{record['id']}", json={"chiefComplaint": "x"}, headers=auth_headers(staff))

    assert response.status_code == 403


def test_attachment_rules(client, create_record, auth_headers, doctor):
    record = create_record().json()["data"]["medicalRecord"]
    url = f"/api/medical-records/{record['id']}/attachments"
    headers = auth_headers(doctor)

    bad_type = client.post(url, json={"fileName": "run.exe", "fileType": "application/x-msdownload", "fileSize": 10}, headers=headers)
    too_big = client.post(url, json={"fileName": "scan.pdf", "fileType": "application/pdf", "fileSize": 10 * 1024 * 1024 + 1}, headers=headers)
    accepted = client.post(url, json={"fileName": "ecg.png", "fileType": "image/png", "fileSize": 2048}, headers=headers)

    assert bad_type.status_code == 400
    assert bad_type.json()["message"] == "Invalid file type. Only PDF, images, and documents are allowed."
    assert too_big.status_code == 400
    assert accepted.status_code == 201
    attachment = accepted.json()["data"]["attachment"]
    assert attachment["fileName"] == "ecg.png"
    assert attachment["uploadedBy"] == doctor.id


def test_progress_notes(client, create_record, auth_headers, doctor):
    record = create_record().json()["data"]["medicalRecord"]
    url = f"/api/medical-records/{record['id']}/progress-notes"

    empty = client.post(url, json={"note": "   "}, headers=auth_headers(doctor))
    added = client.post(url, json={"note": "Pain subsiding"}, headers=auth_headers(doctor))

    assert empty.status_code == 400
    assert empty.json()["message"] == "Progress note is required"
    assert added.status_code == 201
    assert added.json()["data"]["progressNote"]["note"] == "Pain subsiding"
    assert added.json()["data"]["progressNote"]["author"] == doctor.id


def test_soft_delete_hides_record(client, create_record, auth_headers, doctor):
    record = create_record().json()["data"]["medicalRecord"]
    url = f"/api/medical-records/{record['id']}"

    deleted = client.delete(url, headers=auth_headers(doctor))

    assert deleted.status_code == 200
    assert client.get(url, headers=auth_headers(doctor)).status_code == 404
    assert client.get("/api/medical-records", headers=auth_headers(doctor)).json()["data"]["medicalRecords"] == []


def test_delete_permissions(client, create_record, auth_headers, patient, manager):
    record = create_record().json()["data"]["medicalRecord"]
    url = f"/api/medical-records/{record['id']}"

    assert client.delete(url, headers=auth_headers(patient)).status_code == 403
    assert client.delete(url, headers=auth_headers(manager)).status_code == 200
