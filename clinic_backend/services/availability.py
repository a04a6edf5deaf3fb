"""Day-off driven availability reconciliation.

A pass compares every active doctor's declared day off with the weekday of
``now`` and flips ``Doctor.available`` where a day off starts or ends. Doctors
turned off by a pass carry ``last_auto_toggle = 'off'``; only those are turned
back on when the day off is over, so a doctor suspended by hand stays
suspended.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from clinic_backend.core import config
from clinic_backend.core.errors import StoreError
from clinic_backend.models.doctor import AUTO_TOGGLE_OFF, AUTO_TOGGLE_ON, WEEKDAYS, Doctor
from clinic_backend.services.store import store_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationStats:
    total: int = 0
    available: int = 0
    unavailable: int = 0
    on_day_off: int = 0
    turned_on: int = 0
    turned_off: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.turned_on or self.turned_off)


def weekday_name(now: datetime) -> str:
    return WEEKDAYS[now.weekday()]


def apply_day_off(doctor: Doctor, current_weekday: str, now: datetime) -> int:
    """Apply one pass to a single doctor.

    Returns -1 when the doctor was turned off, 1 when turned back on and 0
    when left alone.
    """
    on_day_off = doctor.day_off == current_weekday

    if on_day_off and doctor.available:
        doctor.available = False
        doctor.last_auto_toggle = AUTO_TOGGLE_OFF
        doctor.last_auto_toggle_at = now
        return -1

    if not on_day_off and not doctor.available and doctor.last_auto_toggle == AUTO_TOGGLE_OFF:
        doctor.available = True
        doctor.last_auto_toggle = AUTO_TOGGLE_ON
        doctor.last_auto_toggle_at = now
        return 1

    return 0


class AvailabilityReconciler:
    def __init__(self, session_factory: sessionmaker, max_attempts: int | None = None):
        self._session_factory = session_factory
        self._max_attempts = max(1, max_attempts or config.RECONCILE_MAX_ATTEMPTS)

    def reconcile(self, now: datetime) -> ReconciliationStats:
        """Run one pass for ``now`` and return the post-mutation counts.

        The pass commits as a single transaction. A concurrent edit to any
        touched doctor fails the version check; the pass is then recomputed
        from a fresh read, up to the configured number of attempts.
        """
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._reconcile_once(now)
            except StoreError as exc:
                if not isinstance(exc.__cause__, StaleDataError) or attempt == self._max_attempts:
                    raise
                logger.info('Reconciliation attempt %s hit a concurrent doctor edit; retrying', attempt)

        raise StoreError('Reconciliation did not run.')

    def _reconcile_once(self, now: datetime) -> ReconciliationStats:
        current_weekday = weekday_name(now)
        turned_on = turned_off = 0
        available = on_day_off = 0

        with store_session(self._session_factory) as db:
            doctors = db.query(Doctor).filter(Doctor.archived.is_(False)).order_by(Doctor.id.asc()).all()

            for doctor in doctors:
                change = apply_day_off(doctor, current_weekday, now)
                if change < 0:
                    turned_off += 1
                elif change > 0:
                    turned_on += 1

                if doctor.day_off == current_weekday:
                    on_day_off += 1
                if doctor.available:
                    available += 1

            db.commit()

        stats = ReconciliationStats(
            total=len(doctors),
            available=available,
            unavailable=len(doctors) - available,
            on_day_off=on_day_off,
            turned_on=turned_on,
            turned_off=turned_off,
        )
        if stats.changed:
            logger.info('Day-off reconciliation for %s: %s', current_weekday, stats)
        else:
            logger.debug('Day-off reconciliation for %s: no changes (%s)', current_weekday, stats)
        return stats
