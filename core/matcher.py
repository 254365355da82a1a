"""Nearest-neighbour matching of a live descriptor against registered students."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, Union

import numpy as np

from .descriptors import Descriptor

logger = logging.getLogger(__name__)

Registry = Union[Mapping[str, Descriptor], Iterable[Tuple[str, Descriptor]]]


@dataclass(frozen=True)
class MatchResult:
    student_id: str
    distance: float
    confidence: float


def euclidean_distance(a: Descriptor, b: Descriptor) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def distance_to_confidence(distance: float, threshold: float) -> float:
    """Display confidence: ``1 - distance / threshold`` clamped to [0, 1]."""
    if threshold <= 0:
        raise ValueError("threshold must be positive")
    return min(1.0, max(0.0, 1.0 - distance / threshold))


def _iter_registry(registry: Registry):
    if isinstance(registry, Mapping):
        return iter(registry.items())
    return iter(registry)


def match(live: Descriptor, registry: Registry, threshold: float) -> Optional[MatchResult]:
    """Return the closest registered student within ``threshold``.

    Entries whose descriptor length differs from ``live`` are skipped. The
    strictly smallest distance wins and exact ties keep the first entry seen.
    ``None`` means no match; an empty registry always yields ``None``.
    """
    if threshold <= 0:
        raise ValueError("threshold must be positive")

    live_vec = np.asarray(live, dtype=np.float64)
    best_id: Optional[str] = None
    best_distance = float("inf")

    for student_id, reference in _iter_registry(registry):
        ref_vec = np.asarray(reference, dtype=np.float64)
        if ref_vec.shape != live_vec.shape:
            logger.debug(
                "[Matcher] Skipping %s: descriptor length %s != %s",
                student_id,
                ref_vec.size,
                live_vec.size,
            )
            continue
        distance = euclidean_distance(live_vec, ref_vec)
        if distance < best_distance:
            best_distance = distance
            best_id = student_id

    if best_id is None or best_distance > threshold:
        return None
    return MatchResult(
        student_id=best_id,
        distance=best_distance,
        confidence=distance_to_confidence(best_distance, threshold),
    )


__all__ = ["MatchResult", "Registry", "match", "euclidean_distance", "distance_to_confidence"]
