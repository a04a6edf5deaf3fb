import logging
from datetime import date, time
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from clinic_backend.core.errors import InvalidStateError, NotFoundError, StoreError, ValidationError
from clinic_backend.models.appointment import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_SCHEDULED,
    Appointment,
)
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.user import ROLE_PATIENT, User
from clinic_backend.services.store import store_session

logger = logging.getLogger(__name__)

LATEST_APPOINTMENTS_LIMIT = 5
MAX_CANCELLATION_REASON_LENGTH = 500
MAX_CONSULTATION_SUMMARY_LENGTH = 5000


def _require_text(value: str | None, label: str, max_length: int) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise ValidationError(f'{label} is required.')
    if len(normalized) > max_length:
        raise ValidationError(f'{label} must be {max_length} characters or fewer.')
    return normalized


def _load_appointment(db: Session, appointment_id: int, doctor_id: int | None = None) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    # Another doctor's appointment is reported as missing.
    if appointment is None or (doctor_id is not None and appointment.doctor_id != doctor_id):
        raise NotFoundError('Appointment not found.')
    return appointment


class AppointmentLedger:
    """Holds appointment records and enforces their lifecycle.

    ``scheduled`` moves to exactly one of ``completed`` or ``cancelled``;
    both are terminal. A completed appointment accepts a consultation summary,
    which may be rewritten any number of times.

    Every transition takes an optional ``doctor_id``; when given, the
    appointment must belong to that doctor.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def schedule(self, doctor_id: int, patient_id: int, slot_date: date, slot_time: time) -> Appointment:
        with store_session(self._session_factory) as db:
            doctor = db.get(Doctor, doctor_id)
            if doctor is None:
                raise NotFoundError('Doctor not found.')
            patient = db.get(User, patient_id)
            if patient is None or patient.role != ROLE_PATIENT:
                raise NotFoundError('Patient not found.')
            if doctor.archived:
                raise InvalidStateError('Archived doctors cannot take new appointments.')
            if patient.archived:
                raise InvalidStateError('Archived patients cannot book new appointments.')

            appointment = Appointment(
                doctor_id=doctor_id,
                patient_id=patient_id,
                slot_date=slot_date,
                slot_time=slot_time,
                status=STATUS_SCHEDULED,
                seen=False,
            )
            db.add(appointment)
            db.commit()
            db.refresh(appointment)

        logger.info('Scheduled appointment %s with doctor %s', appointment.id, doctor_id)
        return appointment

    def get(self, appointment_id: int) -> Appointment:
        with store_session(self._session_factory) as db:
            return _load_appointment(db, appointment_id)

    def cancel(self, appointment_id: int, reason: str | None, doctor_id: int | None = None) -> Appointment:
        with store_session(self._session_factory) as db:
            appointment = _load_appointment(db, appointment_id, doctor_id)
            reason = _require_text(reason, 'Cancellation reason', MAX_CANCELLATION_REASON_LENGTH)
            if appointment.status != STATUS_SCHEDULED:
                raise InvalidStateError(f'Only scheduled appointments can be cancelled (status: {appointment.status}).')

            appointment.status = STATUS_CANCELLED
            appointment.cancellation_reason = reason
            db.commit()
            db.refresh(appointment)

        logger.info('Cancelled appointment %s', appointment_id)
        return appointment

    def complete(self, appointment_id: int, doctor_id: int | None = None) -> Appointment:
        with store_session(self._session_factory) as db:
            appointment = _load_appointment(db, appointment_id, doctor_id)
            if appointment.status != STATUS_SCHEDULED:
                raise InvalidStateError(f'Only scheduled appointments can be completed (status: {appointment.status}).')

            appointment.status = STATUS_COMPLETED
            db.commit()
            db.refresh(appointment)

        logger.info('Completed appointment %s', appointment_id)
        return appointment

    def attach_summary(self, appointment_id: int, summary: str | None, doctor_id: int | None = None) -> Appointment:
        with store_session(self._session_factory) as db:
            appointment = _load_appointment(db, appointment_id, doctor_id)
            summary = _require_text(summary, 'Consultation summary', MAX_CONSULTATION_SUMMARY_LENGTH)
            if appointment.status != STATUS_COMPLETED:
                raise InvalidStateError('A consultation summary can only be added to a completed appointment.')

            appointment.consultation_summary = summary
            db.commit()
            db.refresh(appointment)

        return appointment

    def mark_seen(self, appointment_ids: Iterable[int]) -> None:
        ids = list(appointment_ids)
        if not ids:
            return
        try:
            with store_session(self._session_factory) as db:
                db.query(Appointment).filter(Appointment.id.in_(ids)).update(
                    {Appointment.seen: True},
                    synchronize_session=False,
                )
                db.commit()
        except StoreError as exc:
            # Advisory flag only.
            logger.warning('Could not mark %s appointment(s) as seen: %s', len(ids), exc)

    def mark_doctor_appointments_seen(self, doctor_id: int) -> None:
        try:
            ids = [appointment.id for appointment in self.list_for_doctor(doctor_id) if not appointment.seen]
        except StoreError as exc:
            logger.warning('Could not load appointments of doctor %s to mark as seen: %s', doctor_id, exc)
            return
        self.mark_seen(ids)

    def list_all(self) -> list[Appointment]:
        with store_session(self._session_factory) as db:
            return db.query(Appointment).order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()

    def list_for_doctor(self, doctor_id: int) -> list[Appointment]:
        with store_session(self._session_factory) as db:
            return (
                db.query(Appointment)
                .filter(Appointment.doctor_id == doctor_id)
                .order_by(Appointment.created_at.desc(), Appointment.id.desc())
                .all()
            )

    def list_for_patient(self, patient_id: int) -> list[Appointment]:
        with store_session(self._session_factory) as db:
            return (
                db.query(Appointment)
                .filter(Appointment.patient_id == patient_id)
                .order_by(Appointment.created_at.desc(), Appointment.id.desc())
                .all()
            )

    def history_for_doctor(self, doctor_id: int) -> list[Appointment]:
        with store_session(self._session_factory) as db:
            return (
                db.query(Appointment)
                .filter(Appointment.doctor_id == doctor_id, Appointment.status == STATUS_COMPLETED)
                .order_by(Appointment.slot_date.desc(), Appointment.slot_time.desc())
                .all()
            )

    def admin_dashboard(self) -> dict:
        with store_session(self._session_factory) as db:
            latest = (
                db.query(Appointment)
                .order_by(Appointment.created_at.desc(), Appointment.id.desc())
                .limit(LATEST_APPOINTMENTS_LIMIT)
                .all()
            )
            return {
                'doctors': db.query(func.count(Doctor.id)).filter(Doctor.archived.is_(False)).scalar() or 0,
                'patients': db.query(func.count(User.id)).filter(
                    User.role == ROLE_PATIENT,
                    User.archived.is_(False),
                ).scalar() or 0,
                'appointments': db.query(func.count(Appointment.id)).scalar() or 0,
                'latest_appointments': latest,
            }

    def doctor_dashboard(self, doctor_id: int) -> dict:
        with store_session(self._session_factory) as db:
            status_counts = dict(
                db.query(Appointment.status, func.count(Appointment.id))
                .filter(Appointment.doctor_id == doctor_id)
                .group_by(Appointment.status)
                .all()
            )
            patients = (
                db.query(func.count(func.distinct(Appointment.patient_id)))
                .filter(Appointment.doctor_id == doctor_id)
                .scalar()
            )
            latest = (
                db.query(Appointment)
                .filter(Appointment.doctor_id == doctor_id)
                .order_by(Appointment.created_at.desc(), Appointment.id.desc())
                .limit(LATEST_APPOINTMENTS_LIMIT)
                .all()
            )
            return {
                'appointments': sum(status_counts.values()),
                'patients': patients or 0,
                'completed': status_counts.get(STATUS_COMPLETED, 0),
                'cancelled': status_counts.get(STATUS_CANCELLED, 0),
                'latest_appointments': latest,
            }
