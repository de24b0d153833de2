from __future__ import annotations

import enum
from datetime import datetime, time

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .auth_models import User, new_uuid, utcnow
from .availability import Availability
from .db import Base

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Clinic",
    "ClinicRole",
    "Doctor",
    "Patient",
    "PatientSex",
    "User",
    "UserClinic",
]


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PatientSex(enum.Enum):
    MALE = "male"
    FEMALE = "female"


class ClinicRole(enum.Enum):
    STAFF = "staff"
    PATIENT = "patient"


class Clinic(Base):
    __tablename__ = "clinics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    memberships: Mapped[list["UserClinic"]] = relationship(
        back_populates="clinic", cascade="all, delete-orphan", passive_deletes=True
    )
    doctors: Mapped[list["Doctor"]] = relationship(
        back_populates="clinic", cascade="all, delete-orphan", passive_deletes=True
    )
    patients: Mapped[list["Patient"]] = relationship(
        back_populates="clinic", cascade="all, delete-orphan", passive_deletes=True
    )
    appointments: Mapped[list["Appointment"]] = relationship(
        back_populates="clinic", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"Clinic({self.name})"


class UserClinic(Base):
    """Membership of a user in a clinic (many-to-many with a role)."""
    __tablename__ = "user_to_clinics"
    __table_args__ = (
        UniqueConstraint("user_id", "clinic_id", name="uq_user_clinic"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[ClinicRole] = mapped_column(
        Enum(ClinicRole, name="clinic_role", values_callable=_enum_values), default=ClinicRole.STAFF, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    user: Mapped["User"] = relationship(back_populates="memberships")
    clinic: Mapped["Clinic"] = relationship(back_populates="memberships")


class Doctor(Base):
    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    specialty: Mapped[str | None] = mapped_column(String(120), nullable=True)
    avatar_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # 0 - Sunday, 1 - Monday, ... 6 - Saturday
    available_from_week_day: Mapped[int] = mapped_column(Integer, nullable=False)
    available_to_week_day: Mapped[int] = mapped_column(Integer, nullable=False)
    # 00:00 - 23:59
    available_from_time: Mapped[time] = mapped_column(Time, nullable=False)
    available_to_time: Mapped[time] = mapped_column(Time, nullable=False)

    appointment_price_in_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    clinic: Mapped["Clinic"] = relationship(back_populates="doctors")
    appointments: Mapped[list["Appointment"]] = relationship(
        back_populates="doctor", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def availability(self) -> Availability:
        return Availability(
            from_week_day=self.available_from_week_day,
            to_week_day=self.available_to_week_day,
            from_time=self.available_from_time,
            to_time=self.available_to_time,
        )

    def __repr__(self) -> str:
        return f"Doctor({self.name}, {self.specialty})"


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone_number: Mapped[str] = mapped_column(String(30), nullable=False)
    sex: Mapped[PatientSex] = mapped_column(
        Enum(PatientSex, name="patient_sex", values_callable=_enum_values), nullable=False
    )
    # optional: the patient's own account, allowed to cancel their bookings
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    clinic: Mapped["Clinic"] = relationship(back_populates="patients")
    appointments: Mapped[list["Appointment"]] = relationship(
        back_populates="patient", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"Patient({self.name})"


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # Storage-side guard against identical double bookings (same doctor, same start)
        Index(
            "uq_appointments_doctor_active_date",
            "doctor_id",
            "date",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", values_callable=_enum_values),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )

    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_id: Mapped[str] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    patient: Mapped["Patient"] = relationship(back_populates="appointments")
    doctor: Mapped["Doctor"] = relationship(back_populates="appointments")
    clinic: Mapped["Clinic"] = relationship(back_populates="appointments")
