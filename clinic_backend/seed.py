from __future__ import annotations

import os
from datetime import time

from sqlalchemy import select

from .auth_models import User
from .auth_security import hash_password
from .db import db_session
from .models import Clinic, ClinicRole, Doctor, Patient, PatientSex, UserClinic

DEMO_CLINIC = "Clínica Exemplo"
DEMO_STAFF_EMAIL = "staff@clinic.local"


def seed_base() -> str:
    """
    Populate minimal demo data (idempotent):
    - one clinic with a staff user
    - doctors with their weekly availability
    - patients
    Returns the demo clinic id.
    """
    with db_session() as s:
        clinic = s.execute(select(Clinic).where(Clinic.name == DEMO_CLINIC)).scalar_one_or_none()
        if clinic is None:
            clinic = Clinic(name=DEMO_CLINIC)
            s.add(clinic)
            s.flush()

        staff = s.execute(select(User).where(User.email == DEMO_STAFF_EMAIL)).scalar_one_or_none()
        if staff is None:
            staff = User(
                name="Recepção",
                email=DEMO_STAFF_EMAIL,
                password_hash=hash_password(os.getenv("DEMO_STAFF_PASSWORD", "staff")),
            )
            s.add(staff)
            s.flush()

        if s.execute(
            select(UserClinic).where(UserClinic.user_id == staff.id, UserClinic.clinic_id == clinic.id)
        ).scalar_one_or_none() is None:
            s.add(UserClinic(user_id=staff.id, clinic_id=clinic.id, role=ClinicRole.STAFF))

        # name, specialty, from/to weekday (Sunday=0), from/to time, price
        doctors = [
            ("Dra. Ana Souza", "Clínica Geral", 1, 5, time(8, 0), time(17, 0), 15000),
            ("Dr. Bruno Lima", "Cardiologia", 5, 1, time(9, 0), time(13, 0), 30000),
        ]
        for name, specialty, from_day, to_day, from_time, to_time, price in doctors:
            exists = s.execute(
                select(Doctor).where(Doctor.clinic_id == clinic.id, Doctor.name == name)
            ).scalar_one_or_none()
            if exists is None:
                s.add(
                    Doctor(
                        clinic_id=clinic.id,
                        name=name,
                        specialty=specialty,
                        available_from_week_day=from_day,
                        available_to_week_day=to_day,
                        available_from_time=from_time,
                        available_to_time=to_time,
                        appointment_price_in_cents=price,
                    )
                )

        patients = [
            ("Carla Mendes", "carla.mendes@example.com", "+55 11 90000-0001", PatientSex.FEMALE),
            ("Diego Rocha", "diego.rocha@example.com", "+55 11 90000-0002", PatientSex.MALE),
        ]
        for name, email, phone, sex in patients:
            if s.execute(select(Patient).where(Patient.email == email)).scalar_one_or_none() is None:
                s.add(Patient(clinic_id=clinic.id, name=name, email=email, phone_number=phone, sex=sex))

        return clinic.id
