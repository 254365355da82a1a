import json
import sqlite3
from datetime import timedelta

import numpy as np

from core.ledger import AttendanceLedger
from database import ACTIVE_EVENT_KEY, DatabaseManager
from tests.conftest import utc


def test_student_crud(db):
    assert db.add_student("S001", "Ada Lovelace", "ada@example.org")
    assert not db.add_student("S001", "Duplicate")

    student = db.get_student("S001")
    assert student["full_name"] == "Ada Lovelace"
    assert student["has_descriptor"] is False

    assert db.update_student("S001", full_name="Ada King")
    assert db.get_student("S001")["full_name"] == "Ada King"
    assert db.get_student("S001")["email"] == "ada@example.org"

    assert db.delete_student("S001")
    assert db.get_student("S001") is None
    assert not db.delete_student("S001")


def test_registry_lists_only_trained_students_in_insertion_order(db):
    db.add_student("B", "Second")
    db.add_student("A", "First")
    db.add_student("C", "Untrained")
    db.set_student_descriptor("A", np.array([0.3, 0.4]))
    db.set_student_descriptor("B", np.array([0.1, 0.2]))

    registry = db.list_trained()
    assert [student_id for student_id, _ in registry] == ["B", "A"]
    assert registry[1][1].tolist() == [0.3, 0.4]


def test_reenrollment_overwrites_and_clear_removes(db):
    db.add_student("A", "Alice")
    db.set_student_descriptor("A", np.array([1.0, 1.0]))
    db.set_student_descriptor("A", np.array([2.0, 2.0]))
    assert db.list_trained()[0][1].tolist() == [2.0, 2.0]

    assert db.clear_student_descriptor("A")
    assert db.list_trained() == []
    assert not db.set_student_descriptor("missing", np.array([1.0]))


def test_malformed_stored_descriptor_is_skipped(db):
    db.add_student("A", "Alice")
    db.add_student("B", "Bob")
    db.set_student_descriptor("B", np.array([0.5, 0.5]))
    with db.get_connection() as conn:
        conn.execute(
            "UPDATE students SET face_descriptor = ? WHERE student_id = 'A'",
            (json.dumps(["x", None]),),
        )
    assert [student_id for student_id, _ in db.list_trained()] == ["B"]


def test_registry_enforces_descriptor_length(tmp_path):
    db = DatabaseManager(tmp_path / "len.db", descriptor_length=2)
    db.add_student("A", "Alice")
    db.add_student("B", "Bob")
    db.set_student_descriptor("A", np.array([1.0, 2.0, 3.0]))
    db.set_student_descriptor("B", np.array([1.0, 2.0]))
    assert [student_id for student_id, _ in db.list_trained()] == ["B"]


def test_events_are_listed_newest_first(db):
    older = db.create_event("Monday", utc(2024, 9, 2, 9))
    newer = db.create_event("Tuesday", utc(2024, 9, 3, 9), "Lab")
    assert [e.id for e in db.list_events()] == [newer.id, older.id]
    assert db.get_event(newer.id).description == "Lab"
    assert db.get_event(newer.id).start_time == utc(2024, 9, 3, 9)


def test_update_event(db):
    event = db.create_event("Lecture", utc(2024, 9, 2, 9))
    updated = db.update_event(event.id, name="Lecture 1", start_time=utc(2024, 9, 2, 10))
    assert updated.name == "Lecture 1"
    assert updated.start_time == utc(2024, 9, 2, 10)
    assert db.update_event("missing", name="x") is None


def test_single_active_event(db):
    first = db.create_event("First", utc(2024, 9, 2, 9))
    second = db.create_event("Second", utc(2024, 9, 3, 9))

    assert db.get_active_event() is None
    assert db.set_active_event(first.id)
    assert db.set_active_event(second.id)
    assert db.get_active_event().id == second.id
    assert not db.set_active_event("missing")
    assert db.get_active_event().id == second.id

    db.clear_active_event()
    assert db.get_active_event() is None


def test_deleting_active_event_clears_it_and_keeps_attendance(db):
    event = db.create_event("Seminar", utc(2024, 9, 2, 9))
    db.set_active_event(event.id)
    AttendanceLedger(db).record_if_absent("S1", event.id, 0.8, utc(2024, 9, 2, 9), event.start_time)

    assert db.delete_event(event.id)
    assert db.get_active_event() is None
    assert db.get_setting(ACTIVE_EVENT_KEY) is None
    assert len(db.list_attendance_for_event(event.id)) == 1


def test_deleting_student_keeps_attendance(db):
    db.add_student("S1", "Sam")
    AttendanceLedger(db).record_if_absent("S1", "e1", 0.8, utc(2024, 9, 2, 9), utc(2024, 9, 2, 9))
    db.delete_student("S1")
    assert [r.student_id for r in db.list_attendance_for_student("S1")] == ["S1"]


def test_attendance_queries(db):
    ledger = AttendanceLedger(db)
    start = utc(2024, 9, 2, 9)
    ledger.record_if_absent("S1", "e1", 0.9, start, start)
    ledger.record_if_absent("S1", "e2", 0.9, start + timedelta(days=1), start)
    ledger.record_if_absent("S2", "e2", 0.9, start + timedelta(days=2), start)

    assert [r.event_id for r in db.list_attendance_for_student("S1")] == ["e2", "e1"]
    in_range = db.list_attendance_by_date_range(start + timedelta(hours=1), start + timedelta(days=1))
    assert [(r.student_id, r.event_id) for r in in_range] == [("S1", "e2")]
    assert len(db.list_all_attendance()) == 3


def test_get_attendance_by_id(db):
    start = utc(2024, 9, 2, 9)
    record = AttendanceLedger(db).record_if_absent("S1", "e1", 0.9, start, start)

    fetched = db.get_attendance(record.id)
    assert fetched == record
    assert db.get_attendance("missing") is None


def test_old_schema_gains_missing_columns(tmp_path):
    path = tmp_path / "old.db"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE students (id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "student_id VARCHAR(50) UNIQUE NOT NULL, full_name VARCHAR(100) NOT NULL, "
        "face_descriptor TEXT, created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP, "
        "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
    )
    conn.commit()
    conn.close()

    db = DatabaseManager(path)
    assert db.add_student("S1", "Sam", "sam@example.org")
    assert db.get_student("S1")["email"] == "sam@example.org"
