"""
Booking engine: the use cases of the scheduling core.

book_appointment
    1. load doctor and patient, both must belong to the requested clinic
    2. candidate interval [date, date + duration)
    3. interval inside the doctor's weekly availability
    4. atomic reserve in the Conflict Index
    5. appointment stored as pending; if storing fails the reservation is released

No lock is held across storage calls: the only critical section is the
per-doctor check-and-insert of ConflictIndex.reserve.

Cancellation writes the status first and releases the reservation after.
A release that lands while the doctor's index is still being loaded is
remembered, so the load does not bring the cancelled booking back. A failure
between the status write and the release leaves a cancelled appointment with
a reservation, which reconcile() (or a restart, since the index is rebuilt
from active rows) frees.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from .auth_models import new_uuid
from .availability import Interval, fits
from .config import APPOINTMENT_DURATION_MINUTES, CLINIC_TIMEZONE
from .conflict_index import ConflictIndex
from .errors import NotFound, OutsideAvailability, TenantMismatch
from .lifecycle import authorize_transition
from .models import AppointmentStatus
from .storage import AppointmentRecord, DoctorRecord, PatientRecord, Storage
from .tenancy import Actor

logger = logging.getLogger(__name__)


class BookingEngine:
    def __init__(
        self,
        storage: Storage,
        duration: timedelta | None = None,
        index: ConflictIndex | None = None,
        timezone: str = CLINIC_TIMEZONE,
    ):
        self.storage = storage
        self.duration = duration or timedelta(minutes=APPOINTMENT_DURATION_MINUTES)
        self.index = index or ConflictIndex()
        self.timezone = ZoneInfo(timezone)

    # =========================
    # Helpers
    # =========================
    def _wall_clock(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return moment
        return moment.astimezone(self.timezone).replace(tzinfo=None)

    def _doctor(self, doctor_id: str) -> DoctorRecord:
        doctor = self.storage.load_doctor(doctor_id)
        if doctor is None:
            raise NotFound("Doctor", doctor_id)
        return doctor

    def _patient(self, patient_id: str) -> PatientRecord:
        patient = self.storage.load_patient(patient_id)
        if patient is None:
            raise NotFound("Patient", patient_id)
        return patient

    def _appointment(self, appointment_id: str) -> AppointmentRecord:
        appointment = self.storage.load_appointment(appointment_id)
        if appointment is None:
            raise NotFound("Appointment", appointment_id)
        return appointment

    def _ensure_loaded(self, doctor_id: str) -> None:
        if not self.index.is_loaded(doctor_id):
            self.index.load(doctor_id, self.storage.load_active_intervals_for_doctor(doctor_id, self.duration))

    # =========================
    # Use cases
    # =========================
    def book_appointment(self, clinic_id: str, doctor_id: str, patient_id: str, date: datetime) -> AppointmentRecord:
        doctor = self._doctor(doctor_id)
        patient = self._patient(patient_id)
        if doctor.clinic_id != clinic_id:
            raise TenantMismatch("Doctor", doctor_id, clinic_id)
        if patient.clinic_id != clinic_id:
            raise TenantMismatch("Patient", patient_id, clinic_id)

        candidate = Interval.starting_at(self._wall_clock(date), self.duration)
        if not fits(doctor.availability, candidate):
            raise OutsideAvailability(doctor_id)

        self._ensure_loaded(doctor_id)
        record = AppointmentRecord(
            id=new_uuid(),
            clinic_id=clinic_id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            date=candidate.start,
            status=AppointmentStatus.PENDING,
        )
        token = self.index.reserve(doctor_id, candidate, key=record.id)
        try:
            self.storage.create_appointment(record)
        except Exception:
            self.index.release(doctor_id, token)
            raise

        logger.info(
            f"Appointment {record.id} booked: doctor {doctor_id}, patient {patient_id}, "
            f"{candidate.start:%Y-%m-%d %H:%M}"
        )
        return record

    def _set_status(self, appointment_id: str, target: AppointmentStatus, actor: Actor) -> AppointmentRecord:
        appointment = self._appointment(appointment_id)
        # ends: the status only moves forward, and cancelled makes authorize_transition raise
        while True:
            patient = self.storage.load_patient(appointment.patient_id)
            authorize_transition(target, actor, appointment, patient)
            if self.storage.update_appointment_status(appointment.id, target, expected=appointment.status):
                return replace(appointment, status=target)
            # somebody else changed it meanwhile: judge again on the fresh status
            appointment = self._appointment(appointment_id)

    def cancel_appointment(self, appointment_id: str, actor: Actor) -> AppointmentRecord:
        appointment = self._set_status(appointment_id, AppointmentStatus.CANCELLED, actor)
        self.index.release(appointment.doctor_id, appointment.id)
        logger.info(f"Appointment {appointment_id} cancelled by user {actor.user_id}")
        return appointment

    def confirm_appointment(self, appointment_id: str, actor: Actor) -> AppointmentRecord:
        appointment = self._set_status(appointment_id, AppointmentStatus.CONFIRMED, actor)
        logger.info(f"Appointment {appointment_id} confirmed by user {actor.user_id}")
        return appointment

    def free_slots(self, clinic_id: str, doctor_id: str, day: date) -> list[datetime]:
        """Slot starts of `day` inside the doctor's window that are not booked."""
        doctor = self._doctor(doctor_id)
        if doctor.clinic_id != clinic_id:
            raise TenantMismatch("Doctor", doctor_id, clinic_id)

        self._ensure_loaded(doctor_id)
        return [
            start
            for start in doctor.availability.slots(day, self.duration)
            if self.index.is_free(doctor_id, Interval.starting_at(start, self.duration))
        ]

    # =========================
    # Index maintenance
    # =========================
    def warm_up(self) -> int:
        """Rebuild the index of every stored doctor. Returns how many doctors were loaded."""
        doctor_ids = self.storage.list_doctor_ids()
        for doctor_id in doctor_ids:
            self._ensure_loaded(doctor_id)
        return len(doctor_ids)

    def reconcile(self, doctor_id: str | None = None) -> int:
        """
        Release reservations whose appointment is stored as cancelled.
        Reservations without a stored row are kept: they may belong to a booking in progress.
        Returns the number of released reservations.
        """
        doctor_ids = [doctor_id] if doctor_id else self.index.doctor_ids()
        released = 0
        for d_id in doctor_ids:
            keys = list(self.index.reservations(d_id))
            statuses = self.storage.load_appointment_statuses(keys)
            for key in keys:
                if statuses.get(key) is AppointmentStatus.CANCELLED and self.index.release(d_id, key):
                    released += 1

        if released:
            logger.warning(f"Reconcile released {released} stale reservation(s)")
        return released

    def forget_doctors(self, doctor_ids: list[str]) -> None:
        for doctor_id in doctor_ids:
            self.index.forget(doctor_id)
