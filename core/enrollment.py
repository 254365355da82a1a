"""Descriptor enrollment: capture N samples, aggregate, store the reference."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional, Protocol, Sequence

from .descriptors import (
    Descriptor,
    DescriptorError,
    DescriptorLengthMismatchError,
    aggregate,
    to_descriptor,
)
from .session import DescriptorOracle, FrameSource


logger = logging.getLogger(__name__)


class EnrollmentError(RuntimeError):
    """Raised when a student cannot be enrolled."""


class DescriptorWriter(Protocol):
    def set_student_descriptor(self, student_id: str, descriptor: Descriptor) -> bool:
        ...


def capture_samples(
    frame_source: FrameSource,
    oracle: DescriptorOracle,
    count: int = 30,
    interval: float = 0.1,
    max_attempts: Optional[int] = None,
    descriptor_length: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Descriptor]:
    """Collect up to ``count`` descriptors; frames without a face are skipped.

    Stops after ``max_attempts`` frames (default ``count * 10``) and returns
    whatever was collected; callers decide whether that is enough.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    attempts_allowed = max_attempts if max_attempts is not None else count * 10
    samples: List[Descriptor] = []
    attempts = 0
    while len(samples) < count and attempts < attempts_allowed:
        attempts += 1
        try:
            frame = frame_source.read()
            raw = oracle.detect(frame)
        except Exception as exc:
            logger.debug("[Enrollment] Frame %d failed: %s", attempts, exc)
            raw = None
        if raw is not None:
            try:
                samples.append(to_descriptor(raw, descriptor_length))
            except DescriptorError as exc:
                logger.debug("[Enrollment] Discarding malformed sample: %s", exc)
        if len(samples) < count and interval > 0:
            sleep(interval)

    logger.info("[Enrollment] Captured %d/%d samples in %d frames", len(samples), count, attempts)
    return samples


def enroll_student(
    store: DescriptorWriter,
    student_id: str,
    samples: Sequence[Any],
    min_samples: int = 1,
    descriptor_length: Optional[int] = None,
) -> Descriptor:
    """Aggregate samples into the student's reference descriptor and persist it.

    Raises:
        InsufficientSamplesError: fewer than ``min_samples`` samples
        DescriptorLengthMismatchError: samples disagree on length
        EnrollmentError: the student does not exist
    """
    descriptor = aggregate(samples, min_samples=min_samples)
    if descriptor_length is not None and descriptor.size != descriptor_length:
        raise DescriptorLengthMismatchError(
            f"Samples have {descriptor.size} values, expected {descriptor_length}"
        )
    if not store.set_student_descriptor(student_id, descriptor):
        raise EnrollmentError(f"Student {student_id} not found")

    logger.info("[Enrollment] Stored reference descriptor for %s (%d samples)", student_id, len(samples))
    return descriptor


__all__ = ["EnrollmentError", "capture_samples", "enroll_student"]
