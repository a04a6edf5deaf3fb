import logging
from datetime import datetime
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core import config
from clinic_backend.database import (
    Base,
    build_engine,
    build_session_factory,
    ensure_appointment_schema,
    ensure_doctor_schema,
    ensure_user_schema,
)
from clinic_backend.models import appointment, doctor, user  # noqa: F401
from clinic_backend.routes import admin_routes, doctor_routes
from clinic_backend.services.container import build_services

logger = logging.getLogger(__name__)


def create_app(
    database_url: str | None = None,
    scheduler_enabled: bool | None = None,
    interval_seconds: int | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """Build the API with its own engine, services and reconciliation scheduler.

    Run with ``uvicorn --factory clinic_backend.main:create_app``.
    """
    config.validate_runtime_config()
    logging.getLogger('clinic_backend').setLevel(config.LOG_LEVEL)

    engine = build_engine(database_url)
    services = build_services(build_session_factory(engine), interval_seconds=interval_seconds, clock=clock)
    run_scheduler = config.SCHEDULER_ENABLED if scheduler_enabled is None else scheduler_enabled

    app = FastAPI()
    app.state.engine = engine
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    @app.on_event('startup')
    def initialize_database() -> None:
        try:
            Base.metadata.create_all(bind=engine)
            ensure_user_schema(engine)
            ensure_doctor_schema(engine)
            ensure_appointment_schema(engine)
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')
            return

        if run_scheduler:
            if config.RECONCILE_ON_STARTUP:
                services.scheduler.run_scheduled()
            services.scheduler.start()

    @app.on_event('shutdown')
    def stop_scheduler() -> None:
        services.scheduler.stop()
        engine.dispose()

    @app.get('/')
    def root():
        return {'status': 'Clinic API Running'}

    app.include_router(admin_routes.router, prefix='/admin')
    app.include_router(doctor_routes.router, prefix='/doctor')

    return app
