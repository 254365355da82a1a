import pytest

from core.descriptors import DescriptorLengthMismatchError, InsufficientSamplesError
from core.enrollment import EnrollmentError, capture_samples, enroll_student
from tests.conftest import FakeFrameSource, FakeOracle


def test_capture_skips_frames_without_a_face():
    frame_source = FakeFrameSource(["a", "nobody", "b", "c"])
    oracle = FakeOracle({"a": [0.0, 0.0], "b": [2.0, 0.0], "c": [1.0, 0.0]})
    pauses = []

    samples = capture_samples(frame_source, oracle, count=3, interval=0.1, sleep=pauses.append)

    assert [s.tolist() for s in samples] == [[0.0, 0.0], [2.0, 0.0], [1.0, 0.0]]
    assert frame_source.reads == 4
    assert pauses == [0.1, 0.1, 0.1]


def test_capture_gives_up_after_max_attempts():
    frame_source = FakeFrameSource()
    samples = capture_samples(frame_source, FakeOracle(), count=5, interval=0, max_attempts=7)
    assert samples == []
    assert frame_source.reads == 7


def test_capture_tolerates_failing_frames_and_bad_samples():
    frame_source = FakeFrameSource(["bad", "good"])
    oracle = FakeOracle({"bad": [1.0, 2.0, 3.0], "good": [1.0, 2.0]})
    samples = capture_samples(
        frame_source, oracle, count=2, interval=0, max_attempts=3, descriptor_length=2
    )
    assert [s.tolist() for s in samples] == [[1.0, 2.0], [1.0, 2.0]]

    broken = FakeFrameSource(error=OSError("no camera"))
    assert capture_samples(broken, oracle, count=1, interval=0, max_attempts=2) == []


def test_capture_rejects_non_positive_count():
    with pytest.raises(ValueError):
        capture_samples(FakeFrameSource(), FakeOracle(), count=0)


def test_enroll_student_stores_the_mean(db):
    db.add_student("S1", "Sam")
    descriptor = enroll_student(db, "S1", [[0.0, 0.0], [2.0, 0.0], [1.0, 0.0]], min_samples=3)

    assert descriptor.tolist() == [1.0, 0.0]
    assert [(sid, d.tolist()) for sid, d in db.list_trained()] == [("S1", [1.0, 0.0])]
    assert db.get_student("S1")["enrolled_at"] is not None


def test_enroll_student_validates_samples(db):
    db.add_student("S1", "Sam")
    with pytest.raises(InsufficientSamplesError):
        enroll_student(db, "S1", [[1.0, 0.0]], min_samples=3)
    with pytest.raises(DescriptorLengthMismatchError):
        enroll_student(db, "S1", [[1.0, 0.0, 0.0]], descriptor_length=2)
    assert db.list_trained() == []


def test_enroll_unknown_student_fails(db):
    with pytest.raises(EnrollmentError):
        enroll_student(db, "ghost", [[1.0, 0.0]])
