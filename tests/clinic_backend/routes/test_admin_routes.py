from datetime import date, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_backend.routes.admin_routes import (
    AddDoctorRequest,
    ChangeAvailabilityRequest,
    UpdateDoctorRequest,
    add_doctor,
    admin_dashboard,
    archive_doctor,
    archive_user,
    cancel_appointment,
    change_availability,
    list_archived_doctors,
    list_archived_users,
    list_doctors,
    manual_day_off_check,
    restore_doctor,
    restore_user,
    update_doctor,
)
from clinic_backend.routes.common import CancelAppointmentRequest, UpdateProfileRequest
from clinic_backend.services.availability import ReconciliationStats

from conftest import MONDAY, TUESDAY


def test_update_profile_request_normalizes_day_off() -> None:
    request = UpdateProfileRequest(day_off=' friday ')

    assert request.day_off == 'Friday'


def test_update_profile_request_rejects_unknown_day_off() -> None:
    with pytest.raises(ValidationError):
        UpdateProfileRequest(day_off='Caturday')


def test_add_doctor_request_normalizes_email() -> None:
    request = AddDoctorRequest(name='Dr. A', email=' DR.A@CLINIC.TEST ')

    assert request.email == 'dr.a@clinic.test'
    assert request.day_off is None


def test_add_doctor_on_their_day_off_is_unavailable_immediately(services) -> None:
    doctor = add_doctor(
        AddDoctorRequest(name='Dr. Mon', email='mon@clinic.test', day_off='Monday'),
        services=services,
        _admin=None,
    )

    assert doctor.available is False
    assert doctor.last_auto_toggle == 'off'


def test_manual_day_off_check_reports_weekday_and_stats(services) -> None:
    services.registry.add_doctor('Dr. Mon', 'mon@clinic.test', day_off='Monday')
    services.registry.add_doctor('Dr. Fri', 'fri@clinic.test', day_off='Friday')

    response = manual_day_off_check(services=services, _admin=None)

    assert response.current_day == 'Monday'
    assert response.stats == ReconciliationStats(
        total=2,
        available=1,
        unavailable=1,
        on_day_off=1,
        turned_on=0,
        turned_off=1,
    )


def test_update_doctor_takes_effect_without_waiting_for_the_interval(services, clock) -> None:
    doctor = services.registry.add_doctor('Dr. Tue', 'tue@clinic.test')
    clock.now = TUESDAY

    response = update_doctor(
        doctor.id,
        UpdateDoctorRequest(day_off='Tuesday', name='Dr. Tuesday'),
        services=services,
        _admin=None,
    )

    assert response.doctor.name == 'Dr. Tuesday'
    assert response.doctor.day_off == 'Tuesday'
    assert response.doctor.available is False
    assert response.stats.turned_off == 1


def test_update_doctor_still_succeeds_when_follow_up_pass_fails(services, monkeypatch: pytest.MonkeyPatch) -> None:
    doctor = services.registry.add_doctor('Dr. A', 'a@clinic.test')

    def broken_run_now():
        raise RuntimeError('scheduler exploded')

    monkeypatch.setattr(services.scheduler, 'run_now', broken_run_now)

    response = update_doctor(doctor.id, UpdateDoctorRequest(fees=120), services=services, _admin=None)

    assert response.doctor.fees == 120
    assert response.stats is None


def test_update_unknown_doctor_returns_not_found(services) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_doctor(999, UpdateDoctorRequest(fees=1), services=services, _admin=None)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Doctor not found.'


def test_change_availability_toggles_doctor(services) -> None:
    doctor = services.registry.add_doctor('Dr. A', 'a@clinic.test')

    toggled = change_availability(ChangeAvailabilityRequest(doctor_id=doctor.id), services=services, _admin=None)

    assert toggled.available is False


@pytest.fixture
def appointment(services, patient):
    doctor = services.registry.add_doctor('Dr. A', 'a@clinic.test')
    return services.ledger.schedule(doctor.id, patient.id, date(2026, 1, 6), time(9, 0))


def test_cancel_appointment_requires_reason(services, appointment) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(appointment.id, CancelAppointmentRequest(cancellation_reason='  '), services=services, _admin=None)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cancellation reason is required.'


def test_cancel_completed_appointment_conflicts(services, appointment) -> None:
    services.ledger.complete(appointment.id)

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(
            appointment.id,
            CancelAppointmentRequest(cancellation_reason='Too late'),
            services=services,
            _admin=None,
        )

    assert exception_info.value.status_code == 409


def test_cancel_appointment_returns_cancelled_record(services, appointment) -> None:
    cancelled = cancel_appointment(
        appointment.id,
        CancelAppointmentRequest(cancellation_reason='Clinic closed'),
        services=services,
        _admin=None,
    )

    assert cancelled.status == 'cancelled'
    assert cancelled.cancellation_reason == 'Clinic closed'


def test_dashboard_counts_active_records(services, appointment) -> None:
    dashboard = admin_dashboard(services=services, _admin=None)

    assert dashboard.doctors == 1
    assert dashboard.patients == 1
    assert dashboard.appointments == 1
    assert [item.id for item in dashboard.latest_appointments] == [appointment.id]


def test_archive_routes_round_trip(services, patient, appointment) -> None:
    doctor_id = appointment.doctor_id

    archive_doctor(doctor_id, services=services, _admin=None)
    archive_user(patient.id, services=services, _admin=None)

    assert list_doctors(services=services, _admin=None) == []
    assert [d.id for d in list_archived_doctors(services=services, _admin=None)] == [doctor_id]
    assert [u.id for u in list_archived_users(services=services, _admin=None)] == [patient.id]

    with pytest.raises(HTTPException) as exception_info:
        archive_doctor(doctor_id, services=services, _admin=None)
    assert exception_info.value.status_code == 409

    restore_doctor(doctor_id, services=services, _admin=None)
    restore_user(patient.id, services=services, _admin=None)

    assert [d.id for d in list_doctors(services=services, _admin=None)] == [doctor_id]
    assert services.ledger.get(appointment.id).status == 'scheduled'


def test_manual_day_off_check_reports_the_instant_its_own_pass_used(
    services, clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    services.registry.add_doctor('Dr. Mon', 'mon@clinic.test', day_off='Monday')
    original_check_now = services.scheduler.check_now

    def check_then_tick():
        run = original_check_now()
        # A recurring tick lands right after the manual pass releases the lock.
        clock.now = TUESDAY
        services.scheduler.run_scheduled()
        return run

    monkeypatch.setattr(services.scheduler, 'check_now', check_then_tick)

    response = manual_day_off_check(services=services, _admin=None)

    assert response.current_day == 'Monday'
    assert response.checked_at == MONDAY
    assert response.stats.turned_off == 1
    assert services.scheduler.last_run_at == TUESDAY


def test_update_doctor_rejects_blank_name(services) -> None:
    doctor = services.registry.add_doctor('Dr. A', 'a@clinic.test')

    with pytest.raises(HTTPException) as exception_info:
        update_doctor(doctor.id, UpdateDoctorRequest(name='   '), services=services, _admin=None)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Doctor name is required.'
    assert services.registry.get(doctor.id).name == 'Dr. A'


def test_update_archived_doctor_conflicts(services) -> None:
    doctor = services.registry.add_doctor('Dr. A', 'a@clinic.test')
    archive_doctor(doctor.id, services=services, _admin=None)

    with pytest.raises(HTTPException) as exception_info:
        update_doctor(doctor.id, UpdateDoctorRequest(day_off='Monday'), services=services, _admin=None)

    assert exception_info.value.status_code == 409
