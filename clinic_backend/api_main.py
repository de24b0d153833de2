from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from .auth_models import User
from .auth_security import create_access_token, get_user_id
from .auth_service import authenticate, create_user, get_user_by_id
from .config import LOG_LEVEL
from .errors import (
    Forbidden,
    InvalidAvailability,
    InvalidTransition,
    NotFound,
    OutsideAvailability,
    SchedulingError,
    SlotConflict,
    StorageUnavailable,
    TenantMismatch,
)
from .models import ClinicRole, PatientSex
from .services import (
    actor_for,
    appointment_flat,
    book_appointment,
    cancel_appointment,
    confirm_appointment,
    create_clinic,
    create_doctor,
    create_patient,
    day_agenda_flat,
    delete_clinic,
    free_slots,
    get_booking_engine,
    get_directory,
    init_db,
    list_clinics_flat,
    list_doctors_flat,
    list_patients_flat,
    reconcile_clinic,
)
from .tenancy import Actor

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Startup: tables and Conflict Index rebuilt from the active appointments
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_db()
    doctors = get_booking_engine().warm_up()
    logger.info(f"Conflict index ready for {doctors} doctor(s)")
    yield


app = FastAPI(title="Clinic Scheduling API", version="1.0.0", lifespan=lifespan)

ERROR_STATUS: dict[type[SchedulingError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    TenantMismatch: status.HTTP_409_CONFLICT,
    InvalidAvailability: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OutsideAvailability: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SlotConflict: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    Forbidden: status.HTTP_403_FORBIDDEN,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    code = next(
        (ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS),
        status.HTTP_400_BAD_REQUEST,
    )
    return JSONResponse(status_code=code, content={"detail": exc.message, "error": type(exc).__name__})


# Auth schemas

class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    name: str
    email: str
    is_active: bool


# Domain schemas

class ClinicCreateIn(BaseModel):
    name: str = Field(..., min_length=1)


class DoctorCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    specialty: str | None = None
    avatar_image_url: str | None = None
    # 0 = Sunday ... 6 = Saturday
    available_from_week_day: int = Field(..., ge=0, le=6)
    available_to_week_day: int = Field(..., ge=0, le=6)
    available_from_time: time
    available_to_time: time
    appointment_price_in_cents: int = Field(..., ge=0)


class PatientCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    phone_number: str
    sex: PatientSex
    user_id: str | None = None


class AppointmentCreateIn(BaseModel):
    doctor_id: str
    patient_id: str
    date: datetime


# Auth dependencies

def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    # extra guard: strip stray spaces / quotes
    token = token.strip().strip('"').strip("'")

    user_id = get_user_id(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    u = get_user_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    return u


def get_actor(user: User = Depends(get_current_user)) -> Actor:
    return actor_for(user.id)


def _member(actor: Actor, clinic_id: str) -> str:
    return get_directory().resolve_clinic(actor, clinic_id)


def _staff(actor: Actor, clinic_id: str) -> str:
    get_directory().require_staff(actor, clinic_id)
    return clinic_id


# AUTH endpoints

@app.post("/api/auth/register", response_model=dict)
def register(payload: RegisterIn) -> dict[str, Any]:
    try:
        user_id = create_user(payload.name, payload.email, payload.password)
        return {"ok": True, "user_id": user_id}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    # the OAuth2 form calls it username: it is the email
    u = authenticate(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(u.id, extra={"email": u.email})
    return TokenOut(access_token=token)


@app.get("/api/me", response_model=MeOut)
def me(user: User = Depends(get_current_user)) -> MeOut:
    return MeOut(id=user.id, name=user.name, email=user.email, is_active=user.is_active)


# CLINIC endpoints

@app.post("/api/clinics", status_code=status.HTTP_201_CREATED)
def api_create_clinic(payload: ClinicCreateIn, user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"ok": True, "clinic_id": create_clinic(payload.name, owner_user_id=user.id)}


@app.get("/api/clinics")
def api_clinics(user: User = Depends(get_current_user)) -> list[dict]:
    return list_clinics_flat(user.id)


@app.delete("/api/clinics/{clinic_id}")
def api_delete_clinic(clinic_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    return {"ok": delete_clinic(_staff(actor, clinic_id))}


@app.post("/api/clinics/{clinic_id}/doctors", status_code=status.HTTP_201_CREATED)
def api_create_doctor(clinic_id: str, payload: DoctorCreateIn, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    doctor_id = create_doctor(
        _staff(actor, clinic_id),
        name=payload.name,
        from_week_day=payload.available_from_week_day,
        to_week_day=payload.available_to_week_day,
        from_time=payload.available_from_time,
        to_time=payload.available_to_time,
        appointment_price_in_cents=payload.appointment_price_in_cents,
        specialty=payload.specialty,
        avatar_image_url=payload.avatar_image_url,
    )
    return {"ok": True, "doctor_id": doctor_id}


@app.get("/api/clinics/{clinic_id}/doctors")
def api_doctors(clinic_id: str, actor: Actor = Depends(get_actor)) -> list[dict]:
    return list_doctors_flat(_member(actor, clinic_id))


@app.get("/api/clinics/{clinic_id}/doctors/{doctor_id}/slots")
def api_free_slots(
    clinic_id: str, doctor_id: str, day: date = Query(...), actor: Actor = Depends(get_actor)
) -> list[str]:
    return [start.isoformat() for start in free_slots(_member(actor, clinic_id), doctor_id, day)]


@app.post("/api/clinics/{clinic_id}/patients", status_code=status.HTTP_201_CREATED)
def api_create_patient(clinic_id: str, payload: PatientCreateIn, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    try:
        patient_id = create_patient(
            _staff(actor, clinic_id),
            payload.name,
            payload.email,
            payload.phone_number,
            payload.sex,
            user_id=payload.user_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "patient_id": patient_id}


@app.get("/api/clinics/{clinic_id}/patients")
def api_patients(clinic_id: str, actor: Actor = Depends(get_actor)) -> list[dict]:
    return list_patients_flat(_staff(actor, clinic_id))


# APPOINTMENT endpoints

@app.post("/api/clinics/{clinic_id}/appointments", status_code=status.HTTP_201_CREATED)
def api_book(clinic_id: str, payload: AppointmentCreateIn, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    clinic_id = _member(actor, clinic_id)
    if actor.clinic_roles[clinic_id] is ClinicRole.PATIENT:
        # patients only book for themselves
        patient = get_booking_engine().storage.load_patient(payload.patient_id)
        if patient is None or patient.user_id != actor.user_id:
            raise Forbidden(f"User {actor.user_id} may only book for their own patient record")

    record = book_appointment(clinic_id, payload.doctor_id, payload.patient_id, payload.date)
    return appointment_flat(record)


@app.post("/api/appointments/{appointment_id}/confirm")
def api_confirm(appointment_id: str, user: User = Depends(get_current_user)) -> dict[str, Any]:
    return appointment_flat(confirm_appointment(appointment_id, user.id))


@app.post("/api/appointments/{appointment_id}/cancel")
def api_cancel(appointment_id: str, user: User = Depends(get_current_user)) -> dict[str, Any]:
    return appointment_flat(cancel_appointment(appointment_id, user.id))


@app.get("/api/clinics/{clinic_id}/agenda")
def api_agenda(
    clinic_id: str,
    doctor_id: str = Query(...),
    day: date = Query(...),
    actor: Actor = Depends(get_actor),
) -> list[dict]:
    return day_agenda_flat(_staff(actor, clinic_id), doctor_id, day)


@app.post("/api/clinics/{clinic_id}/reconcile")
def api_reconcile(clinic_id: str, actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    # the index lives in this process: only the server can repair it
    return {"ok": True, "released": reconcile_clinic(_staff(actor, clinic_id))}
