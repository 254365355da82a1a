from datetime import timedelta

import pytest

from core.descriptors import aggregate
from core.ledger import STATUS_PRESENT, AttendanceLedger
from core.matcher import match
from tests.conftest import utc


def test_enroll_match_and_record_once(db):
    event_start = utc(2024, 9, 2, 9, 0, 0)
    reference = aggregate([[0.0, 0.0], [2.0, 0.0], [1.0, 0.0]])
    assert reference.tolist() == [1.0, 0.0]

    db.add_student("S", "Sam")
    db.set_student_descriptor("S", reference)
    result = match([1.1, 0.0], db.list_trained(), 0.6)
    assert result.student_id == "S"
    assert result.distance == pytest.approx(0.1)
    assert result.confidence > 0.8

    ledger = AttendanceLedger(db)
    first = ledger.record_if_absent("S", "E", 0.95, event_start - timedelta(minutes=1), event_start)
    assert first.status == STATUS_PRESENT

    second = ledger.record_if_absent("S", "E", 0.5, event_start + timedelta(hours=2), event_start)
    assert second == first
    assert len(db.list_attendance_for_event("E")) == 1
