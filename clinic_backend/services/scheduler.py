"""Recurring and on-demand driver for the availability reconciler.

APScheduler-based background scheduler. Runs one reconciliation pass every
``RECONCILE_INTERVAL_SECONDS`` and whenever an admin or doctor asks for one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from clinic_backend.core import config
from clinic_backend.core.errors import StoreError
from clinic_backend.services.availability import AvailabilityReconciler, ReconciliationStats, weekday_name

logger = logging.getLogger(__name__)

JOB_ID = 'day_off_reconciliation'


@dataclass(frozen=True)
class ReconciliationRun:
    checked_at: datetime
    stats: ReconciliationStats

    @property
    def current_day(self) -> str:
        return weekday_name(self.checked_at)


class ReconciliationScheduler:
    """Guarantees at most one reconciliation pass in flight.

    Recurring ticks that find a pass running are skipped; manual requests wait
    for the running pass and then run their own, which finds nothing left to
    change.
    """

    def __init__(
        self,
        reconciler: AvailabilityReconciler,
        interval_seconds: int | None = None,
        lock_timeout_seconds: float | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds or config.RECONCILE_INTERVAL_SECONDS
        self.lock_timeout_seconds = (
            lock_timeout_seconds if lock_timeout_seconds is not None else config.RECONCILE_LOCK_TIMEOUT_SECONDS
        )
        self.clock = clock

        self._pass_lock = Lock()
        self._lifecycle_lock = Lock()
        self._scheduler: BackgroundScheduler | None = None
        self.last_stats: ReconciliationStats | None = None
        self.last_run_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        with self._lifecycle_lock:
            if self._scheduler is not None:
                logger.warning('ReconciliationScheduler already running')
                return

            scheduler = BackgroundScheduler()
            scheduler.add_job(
                self.run_scheduled,
                IntervalTrigger(seconds=self.interval_seconds),
                id=JOB_ID,
                name='Day-off availability reconciliation',
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            self._scheduler = scheduler

        logger.info('ReconciliationScheduler started (interval=%ss)', self.interval_seconds)

    def stop(self) -> None:
        """Stop the recurring trigger, waiting for a pass that is in flight."""
        with self._lifecycle_lock:
            scheduler, self._scheduler = self._scheduler, None

        if scheduler is None:
            return

        scheduler.shutdown(wait=True)
        logger.info('ReconciliationScheduler stopped')

    def run_now(self) -> ReconciliationStats:
        """Run a pass synchronously. Every failure is raised to the caller."""
        return self.check_now().stats

    def check_now(self) -> ReconciliationRun:
        """Like ``run_now``, but also reports the instant the pass evaluated."""
        if not self._pass_lock.acquire(timeout=self.lock_timeout_seconds):
            raise StoreError('Timed out waiting for the running availability check to finish.')
        try:
            return self._run_pass()
        finally:
            self._pass_lock.release()

    def run_scheduled(self) -> None:
        """Recurring entry point. Never raises; failures wait for the next tick."""
        if not self._pass_lock.acquire(blocking=False):
            logger.debug('Skipping scheduled reconciliation: a pass is already running')
            return
        try:
            self._run_pass()
        except StoreError as exc:
            logger.warning('Scheduled reconciliation failed, retrying next interval: %s', exc)
        except Exception:
            logger.exception('Unexpected error during scheduled reconciliation')
        finally:
            self._pass_lock.release()

    def _run_pass(self) -> ReconciliationRun:
        now = self.clock()
        stats = self.reconciler.reconcile(now)
        self.last_stats = stats
        self.last_run_at = now
        return ReconciliationRun(checked_at=now, stats=stats)
