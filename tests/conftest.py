# tests/conftest.py
from datetime import time

import pytest

from clinic_backend import db, services
from clinic_backend.auth_service import create_user
from clinic_backend.booking import BookingEngine
from clinic_backend.models import ClinicRole, PatientSex
from clinic_backend.storage import SqlAlchemyStorage
from clinic_backend.tenancy import TenantDirectory


@pytest.fixture
def database(tmp_path):
    """Fresh SQLite file per test, bound to the module-level engine and session factory."""
    engine = db.use_database(f"sqlite:///{tmp_path / 'clinic_test.sqlite'}")
    services.reset_booking_engine()
    services.init_db()

    yield engine

    services.reset_booking_engine()
    engine.dispose()


@pytest.fixture
def storage(database):
    return SqlAlchemyStorage()


@pytest.fixture
def engine(storage):
    return BookingEngine(storage)


@pytest.fixture
def directory(storage):
    return TenantDirectory(storage)


@pytest.fixture
def staff_user(database):
    return create_user("Front Desk", "desk@clinic.test", "secret")


@pytest.fixture
def clinic(staff_user):
    return services.create_clinic("Clinic One", owner_user_id=staff_user)


@pytest.fixture
def other_clinic(database):
    return services.create_clinic("Clinic Two")


@pytest.fixture
def doctor(clinic):
    # Monday to Friday, 08:00-17:00
    return services.create_doctor(
        clinic,
        name="Dr. Ana",
        from_week_day=1,
        to_week_day=5,
        from_time=time(8, 0),
        to_time=time(17, 0),
        appointment_price_in_cents=15000,
        specialty="General",
    )


@pytest.fixture
def patient_user(clinic):
    user_id = create_user("Carla", "carla@clinic.test", "secret")
    services.add_member(user_id, clinic, role=ClinicRole.PATIENT)
    return user_id


@pytest.fixture
def patient(clinic, patient_user):
    return services.create_patient(
        clinic, "Carla", "carla@example.com", "+55 11 90000-0001", PatientSex.FEMALE, user_id=patient_user
    )
