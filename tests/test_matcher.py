from collections import OrderedDict

import numpy as np
import pytest

from core.matcher import distance_to_confidence, euclidean_distance, match


def vec(*values):
    return np.array(values, dtype=np.float64)


def test_distance_equal_to_threshold_is_accepted():
    result = match(vec(0.0, 0.0), [("s1", vec(0.6, 0.0))], 0.6)
    assert result is not None
    assert result.student_id == "s1"
    assert result.distance == pytest.approx(0.6)


def test_distance_just_above_threshold_is_rejected():
    assert match(vec(0.0, 0.0), [("s1", vec(0.6 + 1e-9, 0.0))], 0.6) is None


def test_threshold_boundary_uses_exact_distance():
    live, reference = vec(0.1, 0.2), vec(0.4, 0.6)
    distance = euclidean_distance(live, reference)
    assert match(live, [("s1", reference)], distance) is not None
    assert match(live, [("s1", reference)], float(np.nextafter(distance, 0.0))) is None


def test_best_of_many_wins():
    registry = [
        ("far", vec(0.5, 0.0)),
        ("near", vec(0.2, 0.0)),
        ("mid", vec(0.4, 0.0)),
    ]
    result = match(vec(0.0, 0.0), registry, 0.6)
    assert result.student_id == "near"
    assert result.distance == pytest.approx(0.2)


def test_exact_tie_keeps_first_seen_entry():
    registry = OrderedDict([("first", vec(0.3, 0.0)), ("second", vec(-0.3, 0.0))])
    assert match(vec(0.0, 0.0), registry, 0.6).student_id == "first"


def test_entries_with_other_lengths_are_skipped():
    registry = [("wrong", vec(0.0, 0.0, 0.0)), ("right", vec(0.1, 0.0))]
    assert match(vec(0.0, 0.0), registry, 0.6).student_id == "right"


def test_empty_registry_is_no_match():
    assert match(vec(0.0, 0.0), [], 0.6) is None


def test_nearest_beyond_threshold_is_no_match():
    assert match(vec(0.0, 0.0), [("s1", vec(3.0, 4.0))], 0.6) is None


def test_non_positive_threshold_is_rejected():
    with pytest.raises(ValueError):
        match(vec(0.0), [("s1", vec(0.0))], 0.0)


def test_confidence_is_scaled_by_threshold():
    assert distance_to_confidence(0.0, 0.6) == 1.0
    assert distance_to_confidence(0.6, 0.6) == 0.0
    assert distance_to_confidence(0.3, 0.6) == pytest.approx(0.5)
    assert distance_to_confidence(2.0, 0.6) == 0.0


def test_match_reports_confidence():
    result = match(vec(1.1, 0.0), [("s1", vec(1.0, 0.0))], 0.6)
    assert result.distance == pytest.approx(0.1)
    assert 0.0 <= result.confidence <= 1.0
    assert result.confidence == pytest.approx(1 - 0.1 / 0.6)


def test_closer_entry_beats_farther_one():
    registry = {"A": vec(0.0, 0.0), "B": vec(10.0, 10.0)}
    result = match(vec(1.0, 0.0), registry, 1.5)
    assert result.student_id == "A"
    assert result.distance == 1.0
