import threading
import time
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from clinic_backend.core.errors import StoreError
from clinic_backend.database import build_session_factory
from clinic_backend.services.availability import AvailabilityReconciler, ReconciliationStats
from clinic_backend.services.doctor_registry import DoctorRegistry
from clinic_backend.services.scheduler import JOB_ID, ReconciliationScheduler

from conftest import MONDAY, TUESDAY, FakeClock


def _scheduler(reconciler, lock_timeout_seconds: float = 5) -> ReconciliationScheduler:
    return ReconciliationScheduler(
        reconciler,
        interval_seconds=3600,
        lock_timeout_seconds=lock_timeout_seconds,
        clock=FakeClock(MONDAY),
    )


def test_run_now_returns_stats_and_records_the_run() -> None:
    expected = ReconciliationStats(total=1, available=1)
    reconciler = MagicMock()
    reconciler.reconcile.return_value = expected
    scheduler = _scheduler(reconciler)

    assert scheduler.run_now() == expected
    reconciler.reconcile.assert_called_once_with(MONDAY)
    assert scheduler.last_stats == expected
    assert scheduler.last_run_at == MONDAY


def test_check_now_keeps_its_own_timestamp_after_a_later_tick() -> None:
    monday_stats = ReconciliationStats(total=1, unavailable=1, on_day_off=1, turned_off=1)
    tuesday_stats = ReconciliationStats(total=1, available=1, turned_on=1)
    reconciler = MagicMock()
    reconciler.reconcile.side_effect = [monday_stats, tuesday_stats]
    clock = FakeClock(MONDAY)
    scheduler = ReconciliationScheduler(reconciler, interval_seconds=3600, lock_timeout_seconds=5, clock=clock)

    run = scheduler.check_now()
    clock.now = TUESDAY
    scheduler.run_scheduled()

    assert run.checked_at == MONDAY
    assert run.current_day == 'Monday'
    assert run.stats == monday_stats
    assert scheduler.last_run_at == TUESDAY


def test_run_now_surfaces_store_errors() -> None:
    reconciler = MagicMock()
    reconciler.reconcile.side_effect = StoreError('database down')
    scheduler = _scheduler(reconciler)

    with pytest.raises(StoreError):
        scheduler.run_now()


def test_scheduled_run_swallows_failures_and_keeps_going() -> None:
    recovered = ReconciliationStats(total=2, available=2)
    reconciler = MagicMock()
    reconciler.reconcile.side_effect = [StoreError('timeout'), RuntimeError('boom'), recovered]
    scheduler = _scheduler(reconciler)

    scheduler.run_scheduled()  # should not raise
    scheduler.run_scheduled()  # should not raise
    scheduler.run_scheduled()

    assert reconciler.reconcile.call_count == 3
    assert scheduler.last_stats == recovered


def test_scheduled_run_is_skipped_while_a_pass_is_in_flight() -> None:
    reconciler = MagicMock()
    scheduler = _scheduler(reconciler)

    scheduler._pass_lock.acquire()
    try:
        scheduler.run_scheduled()
    finally:
        scheduler._pass_lock.release()

    reconciler.reconcile.assert_not_called()


def test_run_now_gives_up_waiting_for_a_stuck_pass() -> None:
    reconciler = MagicMock()
    scheduler = _scheduler(reconciler, lock_timeout_seconds=0.05)

    scheduler._pass_lock.acquire()
    try:
        with pytest.raises(StoreError):
            scheduler.run_now()
    finally:
        scheduler._pass_lock.release()

    reconciler.reconcile.assert_not_called()


def test_simultaneous_manual_runs_never_overlap_or_double_count(file_engine) -> None:
    session_factory = build_session_factory(file_engine)
    registry = DoctorRegistry(session_factory)
    for index in range(10):
        registry.add_doctor(f'Dr. {index}', f'doctor{index}@clinic.test', day_off='Monday' if index < 3 else None)

    reconciler = AvailabilityReconciler(session_factory, max_attempts=1)
    in_flight = 0
    max_in_flight = 0
    counter_lock = threading.Lock()
    original = reconciler.reconcile

    def slow_reconcile(now):
        nonlocal in_flight, max_in_flight
        with counter_lock:
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
        try:
            time.sleep(0.05)
            return original(now)
        finally:
            with counter_lock:
                in_flight -= 1

    reconciler.reconcile = slow_reconcile
    scheduler = _scheduler(reconciler)
    barrier = threading.Barrier(2)
    results: list[ReconciliationStats] = []
    errors: list[Exception] = []

    def worker() -> None:
        barrier.wait()
        try:
            results.append(scheduler.run_now())
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    assert len(results) == 2
    assert max_in_flight == 1
    assert sum(stats.turned_off for stats in results) == 3
    assert sum(stats.turned_on for stats in results) == 0
    for stats in results:
        assert stats.total == 10
        assert stats.available == 7
        assert stats.on_day_off == 3


def test_start_registers_one_recurring_job_and_stop_is_idempotent() -> None:
    scheduler = _scheduler(MagicMock())

    scheduler.start()
    scheduler.start()
    try:
        assert scheduler.is_running
        job = scheduler._scheduler.get_job(JOB_ID)
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
    finally:
        scheduler.stop()

    assert not scheduler.is_running
    scheduler.stop()


def test_stop_waits_for_a_scheduled_pass_in_flight() -> None:
    started = threading.Event()
    finished = threading.Event()
    reconciler = MagicMock()

    def slow_reconcile(now):
        started.set()
        time.sleep(0.2)
        finished.set()
        return ReconciliationStats()

    reconciler.reconcile.side_effect = slow_reconcile
    scheduler = _scheduler(reconciler)
    scheduler.start()
    scheduler._scheduler.modify_job(JOB_ID, next_run_time=datetime.now())

    assert started.wait(timeout=5)
    scheduler.stop()

    assert finished.is_set()
    assert not scheduler.is_running
