from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from clinic_backend.auth.dependencies import get_current_doctor
from clinic_backend.core.errors import ClinicError
from clinic_backend.models.doctor import Doctor
from clinic_backend.routes.common import (
    AppointmentResponse,
    DayOffCheckResponse,
    DoctorResponse,
    ProfileUpdateResponse,
    UpdateProfileRequest,
    http_error,
)
from clinic_backend.services.container import ClinicServices, get_services

router = APIRouter(tags=['doctor'])


class DoctorCancelAppointmentRequest(BaseModel):
    appointment_id: int
    cancellation_reason: str | None = None


class AppointmentActionRequest(BaseModel):
    appointment_id: int


class ConsultationSummaryRequest(BaseModel):
    appointment_id: int
    consultation_summary: str | None = None


class DoctorDashboardResponse(BaseModel):
    appointments: int
    patients: int
    completed: int
    cancelled: int
    latest_appointments: list[AppointmentResponse]


@router.get('/profile', response_model=DoctorResponse)
def get_profile(doctor: Doctor = Depends(get_current_doctor)):
    return doctor


@router.post('/update-profile', response_model=ProfileUpdateResponse)
def update_profile(
    data: UpdateProfileRequest,
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    try:
        services.registry.update_profile(doctor.id, **data.model_dump(exclude_unset=True))
    except ClinicError as exc:
        raise http_error(exc) from exc

    stats = services.reconcile_after_profile_change(doctor.id)
    try:
        return ProfileUpdateResponse(
            doctor=DoctorResponse.model_validate(services.registry.get(doctor.id)),
            stats=stats,
        )
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.get('/update-day-off-availability', response_model=DayOffCheckResponse)
def update_day_off_availability(
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    del doctor
    try:
        run = services.scheduler.check_now()
    except ClinicError as exc:
        raise http_error(exc) from exc

    return DayOffCheckResponse(current_day=run.current_day, checked_at=run.checked_at, stats=run.stats)


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    try:
        return services.ledger.list_for_doctor(doctor.id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.post('/cancel-appointment', response_model=AppointmentResponse)
def cancel_appointment(
    data: DoctorCancelAppointmentRequest,
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    try:
        return services.ledger.cancel(data.appointment_id, data.cancellation_reason, doctor_id=doctor.id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.post('/complete-appointment', response_model=AppointmentResponse)
def complete_appointment(
    data: AppointmentActionRequest,
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    try:
        return services.ledger.complete(data.appointment_id, doctor_id=doctor.id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.post('/add-consultation-summary', response_model=AppointmentResponse)
def add_consultation_summary(
    data: ConsultationSummaryRequest,
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    try:
        return services.ledger.attach_summary(data.appointment_id, data.consultation_summary, doctor_id=doctor.id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.post('/mark-appointments-seen', status_code=status.HTTP_204_NO_CONTENT)
def mark_appointments_seen(
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    services.ledger.mark_doctor_appointments_seen(doctor.id)


@router.get('/appointment-history', response_model=list[AppointmentResponse])
def appointment_history(
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    try:
        return services.ledger.history_for_doctor(doctor.id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.get('/dashboard', response_model=DoctorDashboardResponse)
def doctor_dashboard(
    services: ClinicServices = Depends(get_services),
    doctor: Doctor = Depends(get_current_doctor),
):
    try:
        dashboard = services.ledger.doctor_dashboard(doctor.id)
    except ClinicError as exc:
        raise http_error(exc) from exc

    return DoctorDashboardResponse(
        appointments=dashboard['appointments'],
        patients=dashboard['patients'],
        completed=dashboard['completed'],
        cancelled=dashboard['cancelled'],
        latest_appointments=[
            AppointmentResponse.model_validate(appointment) for appointment in dashboard['latest_appointments']
        ],
    )
