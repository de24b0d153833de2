# tests/test_services.py
from datetime import date, datetime, time

import pytest
from sqlalchemy import func, select

from clinic_backend import services
from clinic_backend.db import db_session
from clinic_backend.errors import InvalidAvailability, NotFound, TenantMismatch
from clinic_backend.models import Appointment, AppointmentStatus, ClinicRole, Doctor, Patient, PatientSex
from clinic_backend.seed import seed_base

MONDAY = date(2026, 1, 12)


def count(model) -> int:
    with db_session() as s:
        return s.scalar(select(func.count()).select_from(model))


def test_doctor_window_is_validated(clinic):
    with pytest.raises(InvalidAvailability):
        services.create_doctor(clinic, "Dr. Late", 1, 5, time(18, 0), time(9, 0), 1000)


def test_doctor_price_cannot_be_negative(clinic):
    with pytest.raises(ValueError):
        services.create_doctor(clinic, "Dr. Free", 1, 5, time(8, 0), time(12, 0), -1)


def test_doctor_needs_an_existing_clinic(database):
    with pytest.raises(NotFound):
        services.create_doctor("missing", "Dr. Nobody", 1, 5, time(8, 0), time(12, 0), 1000)


def test_patient_email_is_unique(clinic, other_clinic, patient):
    with pytest.raises(ValueError):
        services.create_patient(other_clinic, "Carla Again", "CARLA@example.com", "555", "female")


def test_lists_are_scoped_to_the_clinic(clinic, other_clinic, doctor, patient):
    services.create_doctor(other_clinic, "Dr. Elsewhere", 1, 5, time(8, 0), time(12, 0), 1000)

    doctors = services.list_doctors_flat(clinic)
    assert [d["id"] for d in doctors] == [doctor]
    assert doctors[0]["available_from_time"] == "08:00"
    assert [p["id"] for p in services.list_patients_flat(clinic)] == [patient]


def test_memberships(clinic, staff_user, patient_user):
    assert services.list_clinics_flat(staff_user) == [{"id": clinic, "name": "Clinic One", "role": "staff"}]

    services.add_member(patient_user, clinic, role=ClinicRole.STAFF)
    assert services.actor_for(patient_user).is_staff(clinic)


def test_day_agenda(clinic, other_clinic, doctor, patient, staff_user):
    first = services.book_appointment(clinic, doctor, patient, datetime(2026, 1, 12, 10, 0))
    services.book_appointment(clinic, doctor, patient, datetime(2026, 1, 12, 9, 0))
    services.cancel_appointment(first.id, staff_user)

    agenda = services.day_agenda_flat(clinic, doctor, MONDAY)
    assert [(r["start"], r["end"], r["status"]) for r in agenda] == [("09:00", "09:30", "pending")]
    assert agenda[0]["patient"] == "Carla"

    with pytest.raises(TenantMismatch):
        services.day_agenda_flat(other_clinic, doctor, MONDAY)


def test_delete_clinic_cascades(clinic, other_clinic, doctor, patient):
    services.book_appointment(clinic, doctor, patient, datetime(2026, 1, 12, 9, 0))
    services.create_patient(other_clinic, "Diego", "diego@example.com", "555", PatientSex.MALE)

    assert services.delete_clinic(clinic)
    assert not services.delete_clinic(clinic)

    assert count(Doctor) == 0
    assert count(Appointment) == 0
    assert count(Patient) == 1
    assert not services.get_booking_engine().index.is_loaded(doctor)


def test_reconcile_clinic(clinic, other_clinic, doctor, patient):
    engine = services.get_booking_engine()
    record = services.book_appointment(clinic, doctor, patient, datetime(2026, 1, 12, 9, 0))
    # cancelled in storage, slot still held in memory
    engine.storage.update_appointment_status(record.id, AppointmentStatus.CANCELLED)

    assert services.reconcile_clinic(other_clinic) == 0
    assert services.reconcile_clinic(clinic) == 1
    services.book_appointment(clinic, doctor, patient, datetime(2026, 1, 12, 9, 0))


def test_seed_is_idempotent(database):
    first = seed_base()
    assert seed_base() == first
    assert len(services.list_doctors_flat(first)) == 2
    assert len(services.list_patients_flat(first)) == 2
