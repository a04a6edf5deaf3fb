from datetime import date, datetime, time

from fastapi import HTTPException
from pydantic import BaseModel, field_validator

from clinic_backend.core.errors import ClinicError
from clinic_backend.services.availability import ReconciliationStats
from clinic_backend.services.doctor_registry import normalize_day_off


def http_error(exc: ClinicError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


class DoctorResponse(BaseModel):
    id: int
    name: str
    email: str | None = None
    speciality: str | None = None
    about: str | None = None
    fees: int | None = None
    day_off: str
    available: bool
    last_auto_toggle: str | None = None
    archived: bool
    archived_at: datetime | None = None

    class Config:
        from_attributes = True


class PatientResponse(BaseModel):
    id: int
    name: str | None = None
    email: str | None = None
    archived: bool
    archived_at: datetime | None = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    slot_date: date
    slot_time: time
    status: str
    cancellation_reason: str | None = None
    consultation_summary: str | None = None
    seen: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DayOffCheckResponse(BaseModel):
    current_day: str
    checked_at: datetime
    stats: ReconciliationStats


class ProfileUpdateResponse(BaseModel):
    doctor: DoctorResponse
    stats: ReconciliationStats | None = None


class CancelAppointmentRequest(BaseModel):
    # Blank or missing reasons are rejected by the ledger with a 400.
    cancellation_reason: str | None = None


class UpdateProfileRequest(BaseModel):
    speciality: str | None = None
    about: str | None = None
    fees: int | None = None
    day_off: str | None = None
    available: bool | None = None

    @field_validator('day_off')
    @classmethod
    def validate_day_off(cls, value: str | None) -> str:
        try:
            return normalize_day_off(value)
        except ClinicError as exc:
            raise ValueError(exc.message) from exc

    @field_validator('fees')
    @classmethod
    def validate_fees(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError('Fees cannot be negative.')
        return value
