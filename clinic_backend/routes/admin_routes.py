from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator

from clinic_backend.auth.dependencies import Principal, require_admin
from clinic_backend.core.errors import ClinicError
from clinic_backend.models.doctor import WEEKDAYS
from clinic_backend.routes.common import (
    AppointmentResponse,
    CancelAppointmentRequest,
    DayOffCheckResponse,
    DoctorResponse,
    PatientResponse,
    ProfileUpdateResponse,
    UpdateProfileRequest,
    http_error,
)
from clinic_backend.services.archive import KIND_DOCTOR, KIND_PATIENT
from clinic_backend.services.container import ClinicServices, get_services

router = APIRouter(tags=['admin'])


class UpdateDoctorRequest(UpdateProfileRequest):
    name: str | None = None


class AddDoctorRequest(UpdateProfileRequest):
    name: str
    email: str
    available: bool | None = True

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid doctor email is required.')
        return normalized


class ChangeAvailabilityRequest(BaseModel):
    doctor_id: int


class AdminDashboardResponse(BaseModel):
    doctors: int
    patients: int
    appointments: int
    latest_appointments: list[AppointmentResponse]


@router.get('/doctors', response_model=list[DoctorResponse])
def list_doctors(
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.registry.list_active()
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.get('/doctor/{doctor_id}', response_model=DoctorResponse)
def get_doctor(
    doctor_id: int,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.registry.get(doctor_id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.post('/add-doctor', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def add_doctor(
    data: AddDoctorRequest,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        doctor = services.registry.add_doctor(
            name=data.name,
            email=data.email,
            speciality=data.speciality,
            day_off=data.day_off,
            available=True if data.available is None else data.available,
            about=data.about,
            fees=data.fees,
        )
    except ClinicError as exc:
        raise http_error(exc) from exc

    # A doctor onboarded on their day off goes unavailable right away.
    if doctor.day_off in WEEKDAYS:
        services.reconcile_after_profile_change(doctor.id)
        try:
            return services.registry.get(doctor.id)
        except ClinicError as exc:
            raise http_error(exc) from exc
    return doctor


@router.put('/update-doctor/{doctor_id}', response_model=ProfileUpdateResponse)
def update_doctor(
    doctor_id: int,
    data: UpdateDoctorRequest,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        services.registry.update_profile(doctor_id, **data.model_dump(exclude_unset=True))
    except ClinicError as exc:
        raise http_error(exc) from exc

    stats = services.reconcile_after_profile_change(doctor_id)
    try:
        return ProfileUpdateResponse(
            doctor=DoctorResponse.model_validate(services.registry.get(doctor_id)),
            stats=stats,
        )
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.post('/change-availability', response_model=DoctorResponse)
def change_availability(
    data: ChangeAvailabilityRequest,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.registry.toggle_availability(data.doctor_id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.post('/manual-day-off-check', response_model=DayOffCheckResponse)
def manual_day_off_check(
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        run = services.scheduler.check_now()
    except ClinicError as exc:
        raise http_error(exc) from exc

    return DayOffCheckResponse(current_day=run.current_day, checked_at=run.checked_at, stats=run.stats)


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.ledger.list_all()
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.put('/appointment-cancel/{appointment_id}', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.ledger.cancel(appointment_id, data.cancellation_reason)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.get('/dashboard', response_model=AdminDashboardResponse)
def admin_dashboard(
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        dashboard = services.ledger.admin_dashboard()
    except ClinicError as exc:
        raise http_error(exc) from exc

    return AdminDashboardResponse(
        doctors=dashboard['doctors'],
        patients=dashboard['patients'],
        appointments=dashboard['appointments'],
        latest_appointments=[
            AppointmentResponse.model_validate(appointment) for appointment in dashboard['latest_appointments']
        ],
    )


@router.get('/users', response_model=list[PatientResponse])
def list_users(
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.archive.list_active(KIND_PATIENT)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.put('/archive-doctor/{doctor_id}', response_model=DoctorResponse)
def archive_doctor(
    doctor_id: int,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.archive.archive(KIND_DOCTOR, doctor_id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.put('/restore-doctor/{doctor_id}', response_model=DoctorResponse)
def restore_doctor(
    doctor_id: int,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.archive.restore(KIND_DOCTOR, doctor_id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.get('/archived-doctors', response_model=list[DoctorResponse])
def list_archived_doctors(
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.archive.list_archived(KIND_DOCTOR)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.put('/archive-user/{user_id}', response_model=PatientResponse)
def archive_user(
    user_id: int,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.archive.archive(KIND_PATIENT, user_id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.put('/restore-user/{user_id}', response_model=PatientResponse)
def restore_user(
    user_id: int,
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.archive.restore(KIND_PATIENT, user_id)
    except ClinicError as exc:
        raise http_error(exc) from exc


@router.get('/archived-users', response_model=list[PatientResponse])
def list_archived_users(
    services: ClinicServices = Depends(get_services),
    _admin: Principal = Depends(require_admin),
):
    try:
        return services.archive.list_archived(KIND_PATIENT)
    except ClinicError as exc:
        raise http_error(exc) from exc
