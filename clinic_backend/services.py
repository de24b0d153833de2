from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import and_, select

from . import db
from .availability import Availability
from .booking import BookingEngine
from .db import Base, db_session
from .errors import NotFound, TenantMismatch
from .models import (
    Appointment,
    AppointmentStatus,
    Clinic,
    ClinicRole,
    Doctor,
    Patient,
    PatientSex,
    UserClinic,
)
from .storage import AppointmentRecord, SqlAlchemyStorage
from .tenancy import Actor, TenantDirectory

logger = logging.getLogger(__name__)

_engine: BookingEngine | None = None


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Create the tables when missing."""
    Base.metadata.create_all(bind=db.engine)


def get_booking_engine() -> BookingEngine:
    """Process-wide booking engine: a single Conflict Index must guard the calendars."""
    global _engine
    if _engine is None:
        _engine = BookingEngine(SqlAlchemyStorage(db_session))
    return _engine


def reset_booking_engine() -> None:
    """Drop the engine and its index (after pointing the app to another database)."""
    global _engine
    _engine = None


def get_directory() -> TenantDirectory:
    return TenantDirectory(get_booking_engine().storage)


def actor_for(user_id: str) -> Actor:
    return get_directory().actor_for(user_id)


# =========================
# CRUD
# =========================
def create_clinic(name: str, owner_user_id: str | None = None) -> str:
    """Register a clinic; the owner, if given, becomes its first staff member."""
    with db_session() as s:
        c = Clinic(name=name.strip())
        s.add(c)
        s.flush()
        if owner_user_id:
            s.add(UserClinic(user_id=owner_user_id, clinic_id=c.id, role=ClinicRole.STAFF))
        logger.info(f"Clinic {c.id} created ({c.name})")
        return c.id


def add_member(user_id: str, clinic_id: str, role: ClinicRole = ClinicRole.STAFF) -> None:
    """Give a user access to a clinic, or change the role of an existing membership."""
    with db_session() as s:
        if s.get(Clinic, clinic_id) is None:
            raise NotFound("Clinic", clinic_id)
        m = s.execute(
            select(UserClinic).where(UserClinic.user_id == user_id, UserClinic.clinic_id == clinic_id)
        ).scalar_one_or_none()
        if m is None:
            s.add(UserClinic(user_id=user_id, clinic_id=clinic_id, role=role))
        else:
            m.role = role


def create_doctor(
    clinic_id: str,
    name: str,
    from_week_day: int,
    to_week_day: int,
    from_time: time,
    to_time: time,
    appointment_price_in_cents: int,
    specialty: str | None = None,
    avatar_image_url: str | None = None,
) -> str:
    # raises InvalidAvailability on a malformed window
    availability = Availability(from_week_day, to_week_day, from_time, to_time)
    if appointment_price_in_cents < 0:
        raise ValueError("The appointment price cannot be negative.")

    with db_session() as s:
        if s.get(Clinic, clinic_id) is None:
            raise NotFound("Clinic", clinic_id)
        d = Doctor(
            clinic_id=clinic_id,
            name=name.strip(),
            specialty=specialty.strip() if specialty else None,
            avatar_image_url=avatar_image_url,
            available_from_week_day=availability.from_week_day,
            available_to_week_day=availability.to_week_day,
            available_from_time=availability.from_time,
            available_to_time=availability.to_time,
            appointment_price_in_cents=appointment_price_in_cents,
        )
        s.add(d)
        s.flush()
        return d.id


def create_patient(
    clinic_id: str,
    name: str,
    email: str,
    phone_number: str,
    sex: PatientSex | str,
    user_id: str | None = None,
) -> str:
    email = email.strip().lower()
    sex = PatientSex(sex)  # accepts "male"/"female" too

    with db_session() as s:
        if s.get(Clinic, clinic_id) is None:
            raise NotFound("Clinic", clinic_id)
        if s.execute(select(Patient.id).where(Patient.email == email)).first() is not None:
            raise ValueError("A patient with this email already exists.")

        p = Patient(
            clinic_id=clinic_id,
            name=name.strip(),
            email=email,
            phone_number=phone_number.strip(),
            sex=sex,
            user_id=user_id,
        )
        s.add(p)
        s.flush()
        return p.id


def delete_clinic(clinic_id: str) -> bool:
    """
    Delete a clinic with its doctors, patients, appointments and memberships.
    The cascade runs in the database (ON DELETE CASCADE); the Conflict Index
    forgets the clinic's doctors afterwards.
    """
    engine = get_booking_engine()
    doctor_ids = engine.storage.list_doctor_ids(clinic_id)

    with db_session() as s:
        c = s.get(Clinic, clinic_id)
        if c is None:
            return False
        s.delete(c)

    engine.forget_doctors(doctor_ids)
    logger.info(f"Clinic {clinic_id} deleted with {len(doctor_ids)} doctor(s)")
    return True


# =========================
# Useful queries (flat dicts, safe outside the session)
# =========================
def list_clinics_flat(user_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Clinic.id, Clinic.name, UserClinic.role)
            .join(UserClinic, UserClinic.clinic_id == Clinic.id)
            .where(UserClinic.user_id == user_id)
            .order_by(Clinic.name)
        ).all()
        return [{"id": r.id, "name": r.name, "role": r.role.value} for r in rows]


def list_doctors_flat(clinic_id: str) -> list[dict]:
    with db_session() as s:
        doctors = s.scalars(select(Doctor).where(Doctor.clinic_id == clinic_id).order_by(Doctor.name))
        return [
            {
                "id": d.id,
                "name": d.name,
                "specialty": d.specialty,
                "appointment_price_in_cents": d.appointment_price_in_cents,
                "available_from_week_day": d.available_from_week_day,
                "available_to_week_day": d.available_to_week_day,
                "available_from_time": d.available_from_time.strftime("%H:%M"),
                "available_to_time": d.available_to_time.strftime("%H:%M"),
            }
            for d in doctors
        ]


def list_patients_flat(clinic_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Patient.id, Patient.name, Patient.email, Patient.phone_number, Patient.sex)
            .where(Patient.clinic_id == clinic_id)
            .order_by(Patient.name)
        ).all()
        return [
            {"id": r.id, "name": r.name, "email": r.email, "phone_number": r.phone_number, "sex": r.sex.value}
            for r in rows
        ]


def day_agenda_flat(clinic_id: str, doctor_id: str, day: date) -> list[dict]:
    """Non-cancelled appointments of a doctor on `day`, in order."""
    start_day = datetime.combine(day, datetime.min.time())
    end_day = start_day + timedelta(days=1)
    duration = get_booking_engine().duration

    with db_session() as s:
        d = s.get(Doctor, doctor_id)
        if d is None:
            raise NotFound("Doctor", doctor_id)
        if d.clinic_id != clinic_id:
            raise TenantMismatch("Doctor", doctor_id, clinic_id)

        q = (
            select(Appointment.id, Appointment.date, Appointment.status, Patient.name.label("patient_name"))
            .join(Patient, Patient.id == Appointment.patient_id)
            .where(
                and_(
                    Appointment.doctor_id == doctor_id,
                    Appointment.date >= start_day,
                    Appointment.date < end_day,
                    Appointment.status != AppointmentStatus.CANCELLED,
                )
            )
            .order_by(Appointment.date.asc())
        )
        rows = s.execute(q).all()
        return [
            {
                "id": r.id,
                "start": r.date.strftime("%H:%M"),
                "end": (r.date + duration).strftime("%H:%M"),
                "status": r.status.value,
                "patient": r.patient_name,
            }
            for r in rows
        ]


# =========================
# Booking (core use cases)
# =========================
def book_appointment(clinic_id: str, doctor_id: str, patient_id: str, start: datetime) -> AppointmentRecord:
    return get_booking_engine().book_appointment(clinic_id, doctor_id, patient_id, start)


def confirm_appointment(appointment_id: str, user_id: str) -> AppointmentRecord:
    return get_booking_engine().confirm_appointment(appointment_id, actor_for(user_id))


def cancel_appointment(appointment_id: str, user_id: str) -> AppointmentRecord:
    return get_booking_engine().cancel_appointment(appointment_id, actor_for(user_id))


def free_slots(clinic_id: str, doctor_id: str, day: date) -> list[datetime]:
    return get_booking_engine().free_slots(clinic_id, doctor_id, day)


def reconcile_clinic(clinic_id: str) -> int:
    """Free the slots of the clinic's cancelled appointments still held by this process' index."""
    engine = get_booking_engine()
    return sum(engine.reconcile(doctor_id) for doctor_id in engine.storage.list_doctor_ids(clinic_id))


def appointment_flat(record: AppointmentRecord) -> dict:
    return {
        "id": record.id,
        "clinic_id": record.clinic_id,
        "doctor_id": record.doctor_id,
        "patient_id": record.patient_id,
        "date": record.date.isoformat(),
        "status": record.status.value,
    }
