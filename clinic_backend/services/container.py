import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from clinic_backend.core import config
from clinic_backend.services.archive import ArchiveStore
from clinic_backend.services.availability import AvailabilityReconciler, ReconciliationStats
from clinic_backend.services.doctor_registry import DoctorRegistry
from clinic_backend.services.ledger import AppointmentLedger
from clinic_backend.services.scheduler import ReconciliationScheduler

logger = logging.getLogger(__name__)


@dataclass
class ClinicServices:
    """Everything a request handler needs, owned by the running app."""

    registry: DoctorRegistry
    reconciler: AvailabilityReconciler
    scheduler: ReconciliationScheduler
    ledger: AppointmentLedger
    archive: ArchiveStore

    def reconcile_after_profile_change(self, doctor_id: int) -> ReconciliationStats | None:
        """Bring a just-edited profile into effect without waiting a full interval.

        The profile write is already committed, so a failure here is logged and
        left for the next scheduled pass.
        """
        try:
            return self.scheduler.run_now()
        except Exception:
            logger.exception('Reconciliation after profile change of doctor %s failed', doctor_id)
            return None


def build_services(
    session_factory: sessionmaker,
    interval_seconds: int | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> ClinicServices:
    reconciler = AvailabilityReconciler(session_factory, max_attempts=config.RECONCILE_MAX_ATTEMPTS)
    return ClinicServices(
        registry=DoctorRegistry(session_factory),
        reconciler=reconciler,
        scheduler=ReconciliationScheduler(reconciler, interval_seconds=interval_seconds, clock=clock),
        ledger=AppointmentLedger(session_factory),
        archive=ArchiveStore(session_factory, clock=clock),
    )


def get_services(request: Request) -> ClinicServices:
    return request.app.state.services
