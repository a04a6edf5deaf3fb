import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from clinic_backend.core.errors import ClinicError, StoreError

logger = logging.getLogger(__name__)


@contextmanager
def store_session(session_factory: sessionmaker) -> Iterator[Session]:
    """Yield a session that rolls back on any error and maps store failures to ``StoreError``.

    Callers commit explicitly; nothing is committed when the block raises.
    """
    db = session_factory()
    try:
        yield db
    except ClinicError:
        db.rollback()
        raise
    except StaleDataError as exc:
        db.rollback()
        raise StoreError('Record was modified concurrently. Retry the request.') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning('Store operation failed: %s', exc)
        raise StoreError('Database unavailable. Verify DATABASE_URL and database credentials.') from exc
    finally:
        db.close()
