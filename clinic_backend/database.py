from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_backend.core import config


Base = declarative_base()

_schema_lock = Lock()
_schema_checked: set[tuple[str, str]] = set()


def build_engine(database_url: str | None = None, timeout_seconds: float | None = None) -> Engine:
    url = database_url or config.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")
    timeout = timeout_seconds if timeout_seconds is not None else config.DB_TIMEOUT_SECONDS

    if url.startswith("sqlite"):
        engine_kwargs = {"connect_args": {"check_same_thread": False, "timeout": timeout}}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            engine_kwargs["poolclass"] = StaticPool
        return create_engine(url, **engine_kwargs)

    connect_args = {}
    if url.startswith("postgresql"):
        connect_args = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return create_engine(url, pool_timeout=timeout, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def _ensure_columns(
    engine: Engine,
    table_name: str,
    migration_steps: list[tuple[str, str]],
    index_statements: list[str],
) -> None:
    key = (engine.url.render_as_string(hide_password=True), table_name)
    if key in _schema_checked:
        return

    with _schema_lock:
        if key in _schema_checked:
            return

        inspector = inspect(engine)

        if table_name not in inspector.get_table_names():
            _schema_checked.add(key)
            return

        existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            for statement in index_statements:
                connection.execute(text(statement))

        _schema_checked.add(key)


def ensure_doctor_schema(engine: Engine) -> None:
    _ensure_columns(
        engine,
        'doctors',
        [
            ('last_auto_toggle', 'ALTER TABLE doctors ADD COLUMN last_auto_toggle VARCHAR'),
            ('last_auto_toggle_at', 'ALTER TABLE doctors ADD COLUMN last_auto_toggle_at TIMESTAMP'),
            ('archived_at', 'ALTER TABLE doctors ADD COLUMN archived_at TIMESTAMP'),
            ('version_id', 'ALTER TABLE doctors ADD COLUMN version_id INTEGER NOT NULL DEFAULT 1'),
        ],
        [
            'CREATE INDEX IF NOT EXISTS idx_doctors_archived_day_off ON doctors(archived, day_off)',
        ],
    )


def ensure_appointment_schema(engine: Engine) -> None:
    _ensure_columns(
        engine,
        'appointments',
        [
            ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR'),
            ('consultation_summary', 'ALTER TABLE appointments ADD COLUMN consultation_summary TEXT'),
            ('seen', 'ALTER TABLE appointments ADD COLUMN seen BOOLEAN NOT NULL DEFAULT FALSE'),
        ],
        [
            'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_status ON appointments(doctor_id, status)',
            'CREATE INDEX IF NOT EXISTS idx_appointments_slot ON appointments(slot_date, slot_time)',
        ],
    )


def ensure_user_schema(engine: Engine) -> None:
    _ensure_columns(
        engine,
        'users',
        [
            ('archived', 'ALTER TABLE users ADD COLUMN archived BOOLEAN NOT NULL DEFAULT FALSE'),
            ('archived_at', 'ALTER TABLE users ADD COLUMN archived_at TIMESTAMP'),
        ],
        [],
    )
