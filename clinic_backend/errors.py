"""
Scheduling errors.

Every failure of the booking core is one of these. They are all recoverable:
the request layer turns them into user-facing responses, nothing here retries.
"""
from __future__ import annotations


class SchedulingError(Exception):
    """Base class for the booking core failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(SchedulingError):
    """Raised when a referenced doctor, patient, appointment or clinic does not exist."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")


class TenantMismatch(SchedulingError):
    """Raised when a doctor or patient belongs to another clinic than the requested one."""

    def __init__(self, kind: str, entity_id: str, clinic_id: str):
        self.kind = kind
        self.entity_id = entity_id
        self.clinic_id = clinic_id
        super().__init__(f"{kind} {entity_id} does not belong to clinic {clinic_id}")


class InvalidAvailability(SchedulingError):
    """Raised when a doctor's weekly window is malformed."""


class OutsideAvailability(SchedulingError):
    """Raised when the requested time is outside the doctor's weekly window."""

    def __init__(self, doctor_id: str, message: str | None = None):
        self.doctor_id = doctor_id
        super().__init__(message or f"Requested time is outside the availability of doctor {doctor_id}")


class SlotConflict(SchedulingError):
    """Raised when the requested interval overlaps an active booking of the same doctor."""

    def __init__(self, doctor_id: str, message: str | None = None):
        self.doctor_id = doctor_id
        super().__init__(message or f"Doctor {doctor_id} is already booked at that time")


class InvalidTransition(SchedulingError):
    """Raised when an appointment status change is not allowed."""

    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move appointment from {current} to {target}")


class AlreadyCancelled(InvalidTransition):
    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__("cancelled", "cancelled", f"Appointment {appointment_id} is already cancelled")


class AlreadyConfirmed(InvalidTransition):
    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__("confirmed", "confirmed", f"Appointment {appointment_id} is already confirmed")


class Forbidden(SchedulingError):
    """Raised when the actor lacks the rights for the operation."""


class StorageUnavailable(SchedulingError):
    """Raised when the storage collaborator fails; the original error is chained."""
