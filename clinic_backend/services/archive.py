import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import sessionmaker

from clinic_backend.core.errors import InvalidStateError, NotFoundError, ValidationError
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.user import ROLE_PATIENT, User
from clinic_backend.services.store import store_session

logger = logging.getLogger(__name__)

KIND_DOCTOR = 'doctor'
KIND_PATIENT = 'patient'

_MODELS = {
    KIND_DOCTOR: Doctor,
    KIND_PATIENT: User,
}


def _model_for(kind: str):
    try:
        return _MODELS[kind]
    except KeyError as exc:
        raise ValidationError(f'Unknown archive kind {kind!r}.') from exc


class ArchiveStore:
    """Soft-delete layer for doctors and patients.

    Archiving only flips ``archived``/``archived_at``; appointment history is
    never touched. Archiving a doctor leaves their scheduled appointments
    scheduled, and restoring one does not recompute availability until the
    next reconciliation pass.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = datetime.now):
        self._session_factory = session_factory
        self._clock = clock

    def archive(self, kind: str, entity_id: int):
        model = _model_for(kind)
        with store_session(self._session_factory) as db:
            entity = self._load(db, model, kind, entity_id)
            if entity.archived:
                raise InvalidStateError(f'{kind.capitalize()} is already archived.')

            entity.archived = True
            entity.archived_at = self._clock()
            db.commit()
            db.refresh(entity)

        logger.info('Archived %s %s', kind, entity_id)
        return entity

    def restore(self, kind: str, entity_id: int):
        model = _model_for(kind)
        with store_session(self._session_factory) as db:
            entity = self._load(db, model, kind, entity_id)
            if not entity.archived:
                raise InvalidStateError(f'{kind.capitalize()} is not archived.')

            entity.archived = False
            entity.archived_at = None
            db.commit()
            db.refresh(entity)

        logger.info('Restored %s %s', kind, entity_id)
        return entity

    def list_archived(self, kind: str) -> list:
        model = _model_for(kind)
        with store_session(self._session_factory) as db:
            query = db.query(model).filter(model.archived.is_(True))
            if model is User:
                query = query.filter(User.role == ROLE_PATIENT)
            return query.order_by(model.archived_at.desc(), model.id.asc()).all()

    def list_active(self, kind: str) -> list:
        model = _model_for(kind)
        with store_session(self._session_factory) as db:
            query = db.query(model).filter(model.archived.is_(False))
            if model is User:
                query = query.filter(User.role == ROLE_PATIENT)
            return query.order_by(model.id.asc()).all()

    @staticmethod
    def _load(db, model, kind: str, entity_id: int):
        entity = db.get(model, entity_id)
        if entity is None or (model is User and entity.role != ROLE_PATIENT):
            raise NotFoundError(f'{kind.capitalize()} not found.')
        return entity
