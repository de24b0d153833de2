from __future__ import annotations

import argparse
import logging
from datetime import date, datetime

from .config import LOG_LEVEL
from .db import use_database
from .errors import SchedulingError
from .seed import seed_base
from .services import (
    book_appointment,
    cancel_appointment,
    confirm_appointment,
    create_patient,
    day_agenda_flat,
    free_slots,
    init_db,
    list_doctors_flat,
    list_patients_flat,
    reset_booking_engine,
)


def cmd_init(args: argparse.Namespace) -> None:
    clinic_id = seed_base()
    print(f"DB initialised and seeded. Demo clinic: {clinic_id}")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "doctors":
        for d in list_doctors_flat(args.clinic_id):
            print(
                f"{d['id']} | {d['name']} | {d['specialty'] or '-'} | "
                f"days {d['available_from_week_day']}-{d['available_to_week_day']} "
                f"{d['available_from_time']}-{d['available_to_time']}"
            )
    elif args.entity == "patients":
        for p in list_patients_flat(args.clinic_id):
            print(f"{p['id']} | {p['name']} | {p['email']}")


def cmd_add_patient(args: argparse.Namespace) -> None:
    pid = create_patient(args.clinic_id, args.name, args.email, args.phone, args.sex)
    print(f"Patient created: {pid}")


def cmd_book(args: argparse.Namespace) -> None:
    start = datetime.fromisoformat(args.start)  # format: 2026-01-14T10:30
    app = book_appointment(args.clinic_id, args.doctor_id, args.patient_id, start)
    print(f"Appointment booked ({app.status.value}).")
    print(f"Appointment ID: {app.id}")


def cmd_confirm(args: argparse.Namespace) -> None:
    app = confirm_appointment(args.appointment_id, args.user_id)
    print(f"Appointment {app.id}: {app.status.value}")


def cmd_cancel(args: argparse.Namespace) -> None:
    app = cancel_appointment(args.appointment_id, args.user_id)
    print(f"Appointment {app.id}: {app.status.value}")


def cmd_agenda(args: argparse.Namespace) -> None:
    rows = day_agenda_flat(args.clinic_id, args.doctor_id, date.fromisoformat(args.day))
    if not rows:
        print("No appointments.")
        return
    for r in rows:
        print(f"{r['start']}-{r['end']} | {r['status']} | {r['patient']} | {r['id']}")


def cmd_slots(args: argparse.Namespace) -> None:
    slots = free_slots(args.clinic_id, args.doctor_id, date.fromisoformat(args.day))
    print(", ".join(s.strftime("%H:%M") for s in slots) if slots else "No free slots.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="clinic_cli", description="Clinic scheduling CLI")
    p.add_argument("--db", default=None, help="Database URL (default: DATABASE_URL / clinic.sqlite)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create the DB and load the demo seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="List entities of a clinic")
    p_list.add_argument("entity", choices=["doctors", "patients"])
    p_list.add_argument("--clinic-id", required=True)
    p_list.set_defaults(func=cmd_list)

    p_addp = sub.add_parser("add-patient", help="Create a patient")
    p_addp.add_argument("--clinic-id", required=True)
    p_addp.add_argument("--name", required=True)
    p_addp.add_argument("--email", required=True)
    p_addp.add_argument("--phone", required=True)
    p_addp.add_argument("--sex", choices=["male", "female"], required=True)
    p_addp.set_defaults(func=cmd_add_patient)

    p_book = sub.add_parser("book", help="Book an appointment")
    p_book.add_argument("--clinic-id", required=True)
    p_book.add_argument("--doctor-id", required=True)
    p_book.add_argument("--patient-id", required=True)
    p_book.add_argument("--start", required=True, help="ISO datetime e.g. 2026-01-14T10:30")
    p_book.set_defaults(func=cmd_book)

    for name, func, help_text in (
        ("confirm", cmd_confirm, "Confirm an appointment"),
        ("cancel", cmd_cancel, "Cancel an appointment"),
    ):
        p_status = sub.add_parser(name, help=help_text)
        p_status.add_argument("--appointment-id", required=True)
        p_status.add_argument("--user-id", required=True, help="Acting user (staff or the patient)")
        p_status.set_defaults(func=func)

    p_agenda = sub.add_parser("agenda", help="Day agenda of a doctor")
    p_agenda.add_argument("--clinic-id", required=True)
    p_agenda.add_argument("--doctor-id", required=True)
    p_agenda.add_argument("--day", required=True, help="ISO date e.g. 2026-01-14")
    p_agenda.set_defaults(func=cmd_agenda)

    p_slots = sub.add_parser("slots", help="Free slots of a doctor on a day")
    p_slots.add_argument("--clinic-id", required=True)
    p_slots.add_argument("--doctor-id", required=True)
    p_slots.add_argument("--day", required=True, help="ISO date e.g. 2026-01-14")
    p_slots.set_defaults(func=cmd_slots)

    return p


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.db:
        use_database(args.db)
        reset_booking_engine()
    init_db()  # make sure the tables exist
    try:
        args.func(args)
    except SchedulingError as e:
        print(f"{type(e).__name__}: {e.message}")
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
