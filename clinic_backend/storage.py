"""
Storage collaborator of the booking core.

The core only talks to the `Storage` protocol and only sees detached records,
never live ORM rows. `SqlAlchemyStorage` is the implementation on top of the
models of this package; every SQLAlchemy failure leaves it as StorageUnavailable.
"""
from __future__ import annotations

import logging
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Iterator, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .auth_models import utcnow
from .availability import Availability, Interval
from .db import db_session
from .errors import SlotConflict, StorageUnavailable
from .models import Appointment, AppointmentStatus, ClinicRole, Doctor, Patient, UserClinic

logger = logging.getLogger(__name__)

ACTIVE_SLOT_INDEX = "uq_appointments_doctor_active_date"


# =========================
# Records
# =========================
@dataclass(frozen=True)
class DoctorRecord:
    id: str
    clinic_id: str
    name: str
    availability: Availability
    appointment_price_in_cents: int


@dataclass(frozen=True)
class PatientRecord:
    id: str
    clinic_id: str
    name: str
    email: str
    user_id: str | None = None


@dataclass(frozen=True)
class AppointmentRecord:
    id: str
    clinic_id: str
    doctor_id: str
    patient_id: str
    date: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING


class Storage(Protocol):
    def load_doctor(self, doctor_id: str) -> DoctorRecord | None: ...

    def load_patient(self, patient_id: str) -> PatientRecord | None: ...

    def load_appointment(self, appointment_id: str) -> AppointmentRecord | None: ...

    def create_appointment(self, record: AppointmentRecord) -> None: ...

    def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus, expected: AppointmentStatus | None = None
    ) -> bool: ...

    def load_active_intervals_for_doctor(self, doctor_id: str, duration: timedelta) -> list[tuple[str, Interval]]: ...

    def load_appointment_statuses(self, appointment_ids: Iterable[str]) -> dict[str, AppointmentStatus]: ...

    def load_memberships(self, user_id: str) -> dict[str, ClinicRole]: ...

    def list_doctor_ids(self, clinic_id: str | None = None) -> list[str]: ...


def _doctor_record(d: Doctor) -> DoctorRecord:
    return DoctorRecord(
        id=d.id,
        clinic_id=d.clinic_id,
        name=d.name,
        availability=d.availability,
        appointment_price_in_cents=d.appointment_price_in_cents,
    )


def _patient_record(p: Patient) -> PatientRecord:
    return PatientRecord(id=p.id, clinic_id=p.clinic_id, name=p.name, email=p.email, user_id=p.user_id)


def _appointment_record(a: Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        id=a.id,
        clinic_id=a.clinic_id,
        doctor_id=a.doctor_id,
        patient_id=a.patient_id,
        date=a.date,
        status=a.status,
    )


def _is_active_slot_violation(exc: IntegrityError) -> bool:
    # Postgres names the index, SQLite names the columns
    message = str(exc.orig)
    return ACTIVE_SLOT_INDEX in message or "appointments.doctor_id, appointments.date" in message


class SqlAlchemyStorage:
    def __init__(self, session_factory: Callable[[], AbstractContextManager[Session]] = db_session):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._session_factory() as s:
                yield s
        except SQLAlchemyError as e:
            logger.error(f"Storage failure: {e}")
            raise StorageUnavailable(f"Storage unavailable: {e.__class__.__name__}") from e

    def load_doctor(self, doctor_id: str) -> DoctorRecord | None:
        with self._session() as s:
            d = s.get(Doctor, doctor_id)
            return _doctor_record(d) if d else None

    def load_patient(self, patient_id: str) -> PatientRecord | None:
        with self._session() as s:
            p = s.get(Patient, patient_id)
            return _patient_record(p) if p else None

    def load_appointment(self, appointment_id: str) -> AppointmentRecord | None:
        with self._session() as s:
            a = s.get(Appointment, appointment_id)
            return _appointment_record(a) if a else None

    def create_appointment(self, record: AppointmentRecord) -> None:
        try:
            with self._session_factory() as s:
                s.add(
                    Appointment(
                        id=record.id,
                        clinic_id=record.clinic_id,
                        doctor_id=record.doctor_id,
                        patient_id=record.patient_id,
                        date=record.date,
                        status=record.status,
                    )
                )
        except IntegrityError as e:
            if _is_active_slot_violation(e):
                raise SlotConflict(record.doctor_id) from e
            logger.error(f"Appointment {record.id} rejected by storage: {e.orig}")
            raise StorageUnavailable(f"Appointment rejected by storage: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"Storage failure: {e}")
            raise StorageUnavailable(f"Storage unavailable: {e.__class__.__name__}") from e

    def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus, expected: AppointmentStatus | None = None
    ) -> bool:
        """
        Set the status; with `expected`, only if the stored status still is `expected`
        (compare-and-set). Returns whether a row was updated.
        """
        q = update(Appointment).where(Appointment.id == appointment_id)
        if expected is not None:
            q = q.where(Appointment.status == expected)
        q = q.values(status=status, updated_at=utcnow()).execution_options(synchronize_session=False)

        with self._session() as s:
            return s.execute(q).rowcount == 1

    def load_active_intervals_for_doctor(self, doctor_id: str, duration: timedelta) -> list[tuple[str, Interval]]:
        q = (
            select(Appointment.id, Appointment.date)
            .where(Appointment.doctor_id == doctor_id, Appointment.status != AppointmentStatus.CANCELLED)
            .order_by(Appointment.date.asc())
        )
        with self._session() as s:
            return [(r.id, Interval.starting_at(r.date, duration)) for r in s.execute(q)]

    def load_appointment_statuses(self, appointment_ids: Iterable[str]) -> dict[str, AppointmentStatus]:
        ids = list(appointment_ids)
        if not ids:
            return {}
        with self._session() as s:
            rows = s.execute(select(Appointment.id, Appointment.status).where(Appointment.id.in_(ids)))
            return {r.id: r.status for r in rows}

    def load_memberships(self, user_id: str) -> dict[str, ClinicRole]:
        with self._session() as s:
            rows = s.execute(select(UserClinic.clinic_id, UserClinic.role).where(UserClinic.user_id == user_id))
            return {r.clinic_id: r.role for r in rows}

    def list_doctor_ids(self, clinic_id: str | None = None) -> list[str]:
        q = select(Doctor.id)
        if clinic_id is not None:
            q = q.where(Doctor.clinic_id == clinic_id)
        with self._session() as s:
            return list(s.scalars(q))
