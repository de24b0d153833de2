"""
Appointment status machine.

    pending --(staff)--> confirmed
    pending --(staff or owning patient)--> cancelled
    confirmed --(staff or owning patient)--> cancelled

cancelled is terminal.
"""
from __future__ import annotations

from .errors import AlreadyCancelled, AlreadyConfirmed, Forbidden, InvalidTransition
from .models import AppointmentStatus
from .storage import AppointmentRecord, PatientRecord
from .tenancy import Actor

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED}),
    AppointmentStatus.CANCELLED: frozenset(),
}


def check_transition(appointment: AppointmentRecord, target: AppointmentStatus) -> None:
    current = appointment.status
    if target in TRANSITIONS[current]:
        return
    if current is target is AppointmentStatus.CANCELLED:
        raise AlreadyCancelled(appointment.id)
    if current is target is AppointmentStatus.CONFIRMED:
        raise AlreadyConfirmed(appointment.id)
    raise InvalidTransition(current.value, target.value)


def can_trigger(
    target: AppointmentStatus, actor: Actor, appointment: AppointmentRecord, patient: PatientRecord | None
) -> bool:
    if actor.is_staff(appointment.clinic_id):
        return True
    if target is not AppointmentStatus.CANCELLED:
        return False
    # the patient may cancel their own booking, from inside the clinic
    return (
        actor.is_member(appointment.clinic_id)
        and patient is not None
        and patient.user_id is not None
        and patient.user_id == actor.user_id
    )


def authorize_transition(
    target: AppointmentStatus, actor: Actor, appointment: AppointmentRecord, patient: PatientRecord | None = None
) -> None:
    """
    Refuse outsiders of the appointment's clinic first, so they learn nothing about it.
    For members, validate the state change, then the actor's rights.
    """
    if not actor.is_member(appointment.clinic_id):
        raise Forbidden(f"User {actor.user_id} is not a member of clinic {appointment.clinic_id}")
    check_transition(appointment, target)
    if not can_trigger(target, actor, appointment, patient):
        raise Forbidden(
            f"User {actor.user_id} may not set appointment {appointment.id} to {target.value}"
        )
