# tests/test_lifecycle.py
from dataclasses import replace
from datetime import datetime

import pytest

from clinic_backend.errors import AlreadyCancelled, AlreadyConfirmed, Forbidden, InvalidTransition
from clinic_backend.lifecycle import authorize_transition, check_transition
from clinic_backend.models import AppointmentStatus, ClinicRole
from clinic_backend.storage import AppointmentRecord, PatientRecord
from clinic_backend.tenancy import Actor

PENDING = AppointmentStatus.PENDING
CONFIRMED = AppointmentStatus.CONFIRMED
CANCELLED = AppointmentStatus.CANCELLED

STAFF = Actor("staff-user", {"clinic-1": ClinicRole.STAFF})
OWNER = Actor("patient-user", {"clinic-1": ClinicRole.PATIENT})
STRANGER = Actor("someone", {"clinic-2": ClinicRole.STAFF})


@pytest.fixture
def appointment():
    return AppointmentRecord(
        id="app-1",
        clinic_id="clinic-1",
        doctor_id="doc-1",
        patient_id="pat-1",
        date=datetime(2026, 1, 12, 9, 0),
        status=PENDING,
    )


@pytest.fixture
def patient():
    return PatientRecord(id="pat-1", clinic_id="clinic-1", name="Carla", email="c@x.test", user_id="patient-user")


def test_allowed_transitions(appointment):
    check_transition(appointment, CONFIRMED)
    check_transition(appointment, CANCELLED)
    check_transition(replace(appointment, status=CONFIRMED), CANCELLED)


def test_cancelled_is_terminal(appointment):
    cancelled = replace(appointment, status=CANCELLED)
    with pytest.raises(AlreadyCancelled):
        check_transition(cancelled, CANCELLED)
    with pytest.raises(InvalidTransition):
        check_transition(cancelled, CONFIRMED)
    with pytest.raises(InvalidTransition):
        check_transition(cancelled, PENDING)


def test_confirmed_cannot_be_confirmed_or_reopened(appointment):
    confirmed = replace(appointment, status=CONFIRMED)
    with pytest.raises(AlreadyConfirmed):
        check_transition(confirmed, CONFIRMED)
    with pytest.raises(InvalidTransition):
        check_transition(confirmed, PENDING)


def test_only_staff_confirms(appointment, patient):
    authorize_transition(CONFIRMED, STAFF, appointment, patient)
    with pytest.raises(Forbidden):
        authorize_transition(CONFIRMED, OWNER, appointment, patient)


def test_staff_or_owning_patient_cancels(appointment, patient):
    authorize_transition(CANCELLED, STAFF, appointment, patient)
    authorize_transition(CANCELLED, OWNER, appointment, patient)


def test_other_users_cannot_cancel(appointment, patient):
    with pytest.raises(Forbidden):
        authorize_transition(CANCELLED, STRANGER, appointment, patient)
    other_patient = Actor("other-patient", {"clinic-1": ClinicRole.PATIENT})
    with pytest.raises(Forbidden):
        authorize_transition(CANCELLED, other_patient, appointment, patient)


def test_patient_without_membership_cannot_cancel(appointment, patient):
    with pytest.raises(Forbidden):
        authorize_transition(CANCELLED, Actor("patient-user"), appointment, patient)


def test_outsider_learns_nothing_about_the_status(appointment, patient):
    with pytest.raises(Forbidden):
        authorize_transition(CANCELLED, STRANGER, replace(appointment, status=CANCELLED), patient)
    with pytest.raises(Forbidden):
        authorize_transition(CONFIRMED, STRANGER, replace(appointment, status=CONFIRMED), patient)


def test_members_get_the_state_error_before_the_rights_error(appointment, patient):
    other_patient = Actor("other-patient", {"clinic-1": ClinicRole.PATIENT})
    with pytest.raises(AlreadyCancelled):
        authorize_transition(CANCELLED, other_patient, replace(appointment, status=CANCELLED), patient)
