from datetime import datetime

import pytest

from clinic_backend.database import Base, build_engine, build_session_factory
from clinic_backend.models import appointment, doctor, user  # noqa: F401
from clinic_backend.models.user import ROLE_ADMIN, ROLE_PATIENT, User
from clinic_backend.services.container import build_services

# 2026-01-05 is a Monday.
MONDAY = datetime(2026, 1, 5, 10, 0)
TUESDAY = datetime(2026, 1, 6, 10, 0)
WEDNESDAY = datetime(2026, 1, 7, 10, 0)
THURSDAY = datetime(2026, 1, 8, 10, 0)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def engine():
    engine = build_engine('sqlite://')
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'clinic.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock(MONDAY)


@pytest.fixture
def services(session_factory, clock):
    services = build_services(session_factory, interval_seconds=3600, clock=clock)
    try:
        yield services
    finally:
        services.scheduler.stop()


def add_user(session_factory, name: str, role: str = ROLE_PATIENT) -> User:
    db = session_factory()
    try:
        created = User(name=name, email=f'{name.lower().replace(" ", ".")}@example.com', role=role, archived=False)
        db.add(created)
        db.commit()
        db.refresh(created)
        return created
    finally:
        db.close()


@pytest.fixture
def patient(session_factory):
    return add_user(session_factory, 'Pat Patient')


@pytest.fixture
def admin_user(session_factory):
    return add_user(session_factory, 'Ada Admin', role=ROLE_ADMIN)
