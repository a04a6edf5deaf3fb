import logging
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from clinic_backend.core.errors import InvalidStateError, NotFoundError, ValidationError
from clinic_backend.models.doctor import DAY_OFF_CHOICES, NO_DAY_OFF, Doctor
from clinic_backend.services.store import store_session

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('name', 'speciality', 'about', 'fees', 'day_off', 'available')


def normalize_day_off(value: str | None) -> str:
    if value is None:
        return NO_DAY_OFF

    normalized = value.strip().capitalize()
    if not normalized:
        return NO_DAY_OFF
    if normalized not in DAY_OFF_CHOICES:
        raise ValidationError(f'Invalid day off {value!r}. Expected None or a weekday name.')
    return normalized


def load_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if doctor is None:
        raise NotFoundError('Doctor not found.')
    return doctor


def _load_editable_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = load_doctor(db, doctor_id)
    if doctor.archived:
        raise InvalidStateError('Archived doctors must be restored before they can be edited.')
    return doctor


class DoctorRegistry:
    """Owns each doctor's declared day off and current availability flag.

    Writes go through the per-record version counter on ``Doctor``, so edits to
    one doctor never wait on edits to another.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add_doctor(
        self,
        name: str,
        email: str,
        speciality: str | None = None,
        day_off: str | None = None,
        available: bool = True,
        about: str | None = None,
        fees: int | None = None,
    ) -> Doctor:
        name = (name or '').strip()
        email = (email or '').strip().lower()
        if not name:
            raise ValidationError('Doctor name is required.')
        if not email:
            raise ValidationError('Doctor email is required.')

        doctor = Doctor(
            name=name,
            email=email,
            speciality=speciality,
            about=about,
            fees=fees,
            day_off=normalize_day_off(day_off),
            available=available,
            archived=False,
        )
        with store_session(self._session_factory) as db:
            db.add(doctor)
            db.commit()
            db.refresh(doctor)

        logger.info('Onboarded doctor %s (day off: %s)', doctor.id, doctor.day_off)
        return doctor

    def get(self, doctor_id: int) -> Doctor:
        with store_session(self._session_factory) as db:
            return load_doctor(db, doctor_id)

    def list_active(self) -> list[Doctor]:
        with store_session(self._session_factory) as db:
            return db.query(Doctor).filter(Doctor.archived.is_(False)).order_by(Doctor.id.asc()).all()

    def update_profile(self, doctor_id: int, **changes: Any) -> Doctor:
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f'Unsupported profile fields: {", ".join(sorted(unknown))}.')
        if 'day_off' in changes:
            changes['day_off'] = normalize_day_off(changes['day_off'])
        if 'name' in changes:
            changes['name'] = (changes['name'] or '').strip()
            if not changes['name']:
                raise ValidationError('Doctor name is required.')

        with store_session(self._session_factory) as db:
            doctor = _load_editable_doctor(db, doctor_id)

            available = changes.pop('available', None)
            if available is not None and bool(available) != doctor.available:
                doctor.available = bool(available)
                # A hand-set flag is never undone by the end of a day off.
                doctor.last_auto_toggle = None

            # An explicit None clears the optional fields.
            for field, value in changes.items():
                setattr(doctor, field, value)

            db.commit()
            db.refresh(doctor)

        logger.info('Updated profile of doctor %s (day off: %s, available: %s)', doctor.id, doctor.day_off, doctor.available)
        return doctor

    def toggle_availability(self, doctor_id: int) -> Doctor:
        with store_session(self._session_factory) as db:
            doctor = _load_editable_doctor(db, doctor_id)
            doctor.available = not doctor.available
            doctor.last_auto_toggle = None
            db.commit()
            db.refresh(doctor)

        logger.info('Doctor %s manually marked %s', doctor.id, 'available' if doctor.available else 'unavailable')
        return doctor
