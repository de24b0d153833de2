# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from clinic_backend.api_main import app


@pytest.fixture
def client(database):
    with TestClient(app) as c:
        yield c


def register_and_login(client, name: str, email: str, password: str = "secret") -> dict:
    r = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert r.status_code == 200, r.text
    r = client.post("/api/auth/login", data={"username": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def staff(client):
    return register_and_login(client, "Front Desk", "desk@clinic.test")


@pytest.fixture
def clinic_id(client, staff):
    r = client.post("/api/clinics", json={"name": "Clinic One"}, headers=staff)
    assert r.status_code == 201, r.text
    return r.json()["clinic_id"]


@pytest.fixture
def doctor_id(client, staff, clinic_id):
    r = client.post(
        f"/api/clinics/{clinic_id}/doctors",
        json={
            "name": "Dr. Ana",
            "specialty": "General",
            "available_from_week_day": 1,
            "available_to_week_day": 5,
            "available_from_time": "08:00",
            "available_to_time": "17:00",
            "appointment_price_in_cents": 15000,
        },
        headers=staff,
    )
    assert r.status_code == 201, r.text
    return r.json()["doctor_id"]


@pytest.fixture
def patient_id(client, staff, clinic_id):
    r = client.post(
        f"/api/clinics/{clinic_id}/patients",
        json={"name": "Carla", "email": "carla@example.com", "phone_number": "555", "sex": "female"},
        headers=staff,
    )
    assert r.status_code == 201, r.text
    return r.json()["patient_id"]


def test_requires_token(client):
    assert client.get("/api/me").status_code == 401
    assert client.get("/api/me", headers={"Authorization": "Bearer nonsense"}).status_code == 401


def test_me(client, staff):
    r = client.get("/api/me", headers=staff)
    assert r.status_code == 200
    assert r.json()["email"] == "desk@clinic.test"


def test_booking_flow(client, staff, clinic_id, doctor_id, patient_id):
    book = {"doctor_id": doctor_id, "patient_id": patient_id, "date": "2026-01-12T09:00:00"}
    r = client.post(f"/api/clinics/{clinic_id}/appointments", json=book, headers=staff)
    assert r.status_code == 201, r.text
    appointment = r.json()
    assert appointment["status"] == "pending"

    r = client.post(
        f"/api/clinics/{clinic_id}/appointments", json={**book, "date": "2026-01-12T09:15:00"}, headers=staff
    )
    assert r.status_code == 409
    assert r.json()["error"] == "SlotConflict"

    r = client.post(
        f"/api/clinics/{clinic_id}/appointments", json={**book, "date": "2026-01-17T09:00:00"}, headers=staff
    )
    assert r.status_code == 422
    assert r.json()["error"] == "OutsideAvailability"

    r = client.post(f"/api/appointments/{appointment['id']}/confirm", headers=staff)
    assert r.json()["status"] == "confirmed"

    r = client.get(f"/api/clinics/{clinic_id}/agenda", params={"doctor_id": doctor_id, "day": "2026-01-12"}, headers=staff)
    assert [row["start"] for row in r.json()] == ["09:00"]

    r = client.post(f"/api/appointments/{appointment['id']}/cancel", headers=staff)
    assert r.json()["status"] == "cancelled"

    r = client.post(f"/api/appointments/{appointment['id']}/cancel", headers=staff)
    assert r.status_code == 409
    assert r.json()["error"] == "AlreadyCancelled"

    r = client.get(f"/api/clinics/{clinic_id}/doctors/{doctor_id}/slots", params={"day": "2026-01-12"}, headers=staff)
    assert "2026-01-12T09:00:00" in r.json()


def test_other_users_are_kept_out(client, clinic_id, doctor_id, patient_id):
    outsider = register_and_login(client, "Outsider", "out@clinic.test")

    assert client.get(f"/api/clinics/{clinic_id}/doctors", headers=outsider).status_code == 403
    r = client.post(
        f"/api/clinics/{clinic_id}/appointments",
        json={"doctor_id": doctor_id, "patient_id": patient_id, "date": "2026-01-12T09:00:00"},
        headers=outsider,
    )
    assert r.status_code == 403


def test_unknown_doctor(client, staff, clinic_id, patient_id):
    r = client.post(
        f"/api/clinics/{clinic_id}/appointments",
        json={"doctor_id": "missing", "patient_id": patient_id, "date": "2026-01-12T09:00:00"},
        headers=staff,
    )
    assert r.status_code == 404


def test_invalid_doctor_window(client, staff, clinic_id):
    r = client.post(
        f"/api/clinics/{clinic_id}/doctors",
        json={
            "name": "Dr. Backwards",
            "available_from_week_day": 1,
            "available_to_week_day": 5,
            "available_from_time": "17:00",
            "available_to_time": "08:00",
            "appointment_price_in_cents": 100,
        },
        headers=staff,
    )
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidAvailability"


def test_delete_clinic(client, staff, clinic_id, doctor_id):
    assert client.delete(f"/api/clinics/{clinic_id}", headers=staff).json() == {"ok": True}
    assert client.get("/api/clinics", headers=staff).json() == []


def test_outsider_cannot_see_the_status_of_an_appointment(client, staff, clinic_id, doctor_id, patient_id):
    book = {"doctor_id": doctor_id, "patient_id": patient_id, "date": "2026-01-12T09:00:00"}
    appointment_id = client.post(f"/api/clinics/{clinic_id}/appointments", json=book, headers=staff).json()["id"]
    client.post(f"/api/appointments/{appointment_id}/cancel", headers=staff)

    # staff of another clinic
    outsider = register_and_login(client, "Outsider", "out@clinic.test")
    client.post("/api/clinics", json={"name": "Clinic Elsewhere"}, headers=outsider)

    for action in ("cancel", "confirm"):
        r = client.post(f"/api/appointments/{appointment_id}/{action}", headers=outsider)
        assert r.status_code == 403
        assert r.json()["error"] == "Forbidden"


def test_reconcile_is_staff_only(client, staff, clinic_id, doctor_id, patient_id):
    assert client.post(f"/api/clinics/{clinic_id}/reconcile", headers=staff).json() == {"ok": True, "released": 0}

    outsider = register_and_login(client, "Outsider", "out@clinic.test")
    assert client.post(f"/api/clinics/{clinic_id}/reconcile", headers=outsider).status_code == 403
