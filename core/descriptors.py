"""Face descriptor type, boundary validation and enrollment-time aggregation.

A descriptor is the fixed-length float vector the detection oracle produces for
one face. Inside the core it is always a read-only ``float64`` numpy array;
anything arriving from JSON, the database or an oracle goes through
:func:`to_descriptor` first.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Optional, Sequence

import numpy as np

Descriptor = np.ndarray


class DescriptorError(ValueError):
    """Base class for descriptor contract violations."""


class InvalidDescriptorError(DescriptorError):
    """Raised when raw input cannot be turned into a descriptor."""


class InsufficientSamplesError(DescriptorError):
    """Raised when aggregation receives fewer samples than required."""


class DescriptorLengthMismatchError(DescriptorError):
    """Raised when samples of one subject do not share a length."""


def _freeze(values: np.ndarray) -> Descriptor:
    values.setflags(write=False)
    return values


def to_descriptor(raw: Any, expected_length: Optional[int] = None) -> Descriptor:
    """Validate an untyped numeric sequence and return an immutable descriptor.

    Args:
        raw: list/tuple/ndarray of numbers (booleans and strings are rejected)
        expected_length: required length, or None to accept any non-empty one

    Raises:
        InvalidDescriptorError: wrong shape, non-numeric or non-finite values
        DescriptorLengthMismatchError: length differs from ``expected_length``
    """
    if raw is None or isinstance(raw, (str, bytes, dict)):
        raise InvalidDescriptorError("Descriptor must be a sequence of numbers")
    if isinstance(raw, np.ndarray):
        if raw.ndim != 1 or not np.issubdtype(raw.dtype, np.number) or raw.dtype == np.bool_:
            raise InvalidDescriptorError("Descriptor must be a flat numeric array")
        values = np.array(raw, dtype=np.float64)
    else:
        try:
            items = list(raw)
        except TypeError as exc:
            raise InvalidDescriptorError("Descriptor must be a sequence of numbers") from exc
        for item in items:
            if isinstance(item, bool) or not isinstance(item, (int, float, np.integer, np.floating)):
                raise InvalidDescriptorError(f"Descriptor contains a non-numeric value: {item!r}")
        values = np.array(items, dtype=np.float64)

    if values.size == 0:
        raise InvalidDescriptorError("Descriptor is empty")
    if not np.all(np.isfinite(values)):
        raise InvalidDescriptorError("Descriptor contains NaN or infinite values")
    if expected_length is not None and values.size != expected_length:
        raise DescriptorLengthMismatchError(
            f"Descriptor has {values.size} values, expected {expected_length}"
        )
    return _freeze(values)


def aggregate(samples: Sequence[Iterable[float]], min_samples: int = 1) -> Descriptor:
    """Reduce per-frame samples of one subject into a reference descriptor.

    Returns the component-wise arithmetic mean. Each component is summed with
    ``math.fsum`` (exactly rounded), so the result does not depend on sample
    order.
    """
    required = max(1, min_samples)
    provided = 0 if samples is None else len(samples)
    if provided < required:
        raise InsufficientSamplesError(f"Need at least {required} samples, got {provided}")

    vectors = [to_descriptor(sample) for sample in samples]
    length = vectors[0].size
    for index, vector in enumerate(vectors[1:], start=1):
        if vector.size != length:
            raise DescriptorLengthMismatchError(
                f"Sample {index} has {vector.size} values, expected {length}"
            )

    count = len(vectors)
    matrix = np.vstack(vectors)
    mean = np.array(
        [math.fsum(matrix[:, column]) / count for column in range(length)],
        dtype=np.float64,
    )
    return _freeze(mean)


def descriptor_to_list(descriptor: Descriptor) -> list:
    """Plain float list for JSON storage and responses."""
    return [float(value) for value in descriptor]


__all__ = [
    "Descriptor",
    "DescriptorError",
    "InvalidDescriptorError",
    "InsufficientSamplesError",
    "DescriptorLengthMismatchError",
    "to_descriptor",
    "aggregate",
    "descriptor_to_list",
]
