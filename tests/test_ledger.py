import threading
from datetime import datetime, timedelta

import pytest

from core.ledger import (
    STATUS_LATE,
    STATUS_PRESENT,
    AttendanceLedger,
    InMemoryAttendanceStore,
    StoreUnavailableError,
    derive_status,
)
from tests.conftest import utc

START = utc(2024, 9, 1, 9, 0, 0)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryAttendanceStore()
    from database import DatabaseManager
    return DatabaseManager(tmp_path / "ledger.db", timeout=5.0)


def test_recognition_at_start_is_present(store):
    record = AttendanceLedger(store).record_if_absent("s1", "e1", 0.9, START, START)
    assert record.status == STATUS_PRESENT


def test_recognition_one_millisecond_after_start_is_late(store):
    record = AttendanceLedger(store).record_if_absent(
        "s1", "e1", 0.9, START + timedelta(milliseconds=1), START
    )
    assert record.status == STATUS_LATE


def test_second_call_returns_original_record_unchanged(store):
    ledger = AttendanceLedger(store)
    first = ledger.record("s1", "e1", 0.83, START, START)
    second = ledger.record("s1", "e1", 0.99, START + timedelta(hours=1), START)

    assert first.created is True
    assert second.created is False
    assert second.record == first.record
    assert second.record.status == STATUS_PRESENT
    assert second.record.confidence == 0.83
    assert len(ledger.list_for_event("e1")) == 1


def test_records_are_unique_per_student_and_event(store):
    ledger = AttendanceLedger(store)
    ledger.record_if_absent("s1", "e1", 0.5, START, START)
    ledger.record_if_absent("s1", "e2", 0.5, START, START)
    ledger.record_if_absent("s2", "e1", 0.5, START, START)
    assert {r.student_id for r in ledger.list_for_event("e1")} == {"s1", "s2"}
    assert ledger.has_record("s1", "e2")
    assert not ledger.has_record("s2", "e2")


def test_stored_values_round_trip(store):
    ledger = AttendanceLedger(store)
    confidence = 0.1 + 0.2
    recognized = utc(2024, 9, 1, 9, 0, 0, 123456)
    created = ledger.record_if_absent("s1", "e1", confidence, recognized, START)
    stored = ledger.list_for_event("e1")[0]
    assert stored == created
    assert stored.confidence == confidence
    assert stored.timestamp == recognized


def test_naive_datetimes_are_treated_as_utc():
    naive_start = datetime(2024, 9, 1, 9, 0, 0)
    assert derive_status(naive_start, START) == STATUS_PRESENT
    assert derive_status(START + timedelta(microseconds=1), naive_start) == STATUS_LATE


def test_confidence_outside_unit_interval_is_rejected():
    ledger = AttendanceLedger(InMemoryAttendanceStore())
    with pytest.raises(ValueError):
        ledger.record("s1", "e1", 1.5, START, START)
    with pytest.raises(ValueError):
        ledger.record("s1", "e1", -0.1, START, START)


def test_lost_race_returns_the_winning_record():
    class RacingStore(InMemoryAttendanceStore):
        """find() never sees the row; insert() hits the unique key."""

        def find_attendance(self, student_id, event_id):
            return None

    store = RacingStore()
    ledger = AttendanceLedger(store)
    winner = ledger.record_if_absent("s1", "e1", 0.7, START, START)
    outcome = ledger.record("s1", "e1", 0.9, START + timedelta(minutes=5), START)
    assert outcome.created is False
    assert outcome.record == winner
    assert len(store) == 1


def test_concurrent_recording_on_sqlite_yields_one_row(db):
    ledger = AttendanceLedger(db)
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def worker(index):
        barrier.wait()
        outcome = ledger.record("s1", "e1", 0.5 + index / 100, START, START)
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(outcomes) == workers
    assert sum(1 for o in outcomes if o.created) == 1
    assert len({o.record.id for o in outcomes}) == 1
    assert len(db.list_attendance_for_event("e1")) == 1


def test_unreachable_store_raises_store_unavailable(db, tmp_path):
    db.db_path = str(tmp_path / "missing" / "dir" / "attendance.db")
    ledger = AttendanceLedger(db)
    with pytest.raises(StoreUnavailableError):
        ledger.record_if_absent("s1", "e1", 0.9, START, START)
