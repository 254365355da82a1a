"""Attendance ledger: one record per (student, event), written once.

The ledger owns the present/late decision and the idempotent
``record_if_absent`` contract. Uniqueness under concurrency is delegated to the
store's ``insert`` which must enforce the (student_id, event_id) key; the
ledger never relies on a bare read-then-write.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Protocol, Tuple

STATUS_PRESENT = "present"
STATUS_LATE = "late"
STATUS_ABSENT = "absent"
VALID_STATUSES = frozenset({STATUS_PRESENT, STATUS_LATE, STATUS_ABSENT})


class LedgerError(RuntimeError):
    """Base class for ledger failures."""


class StoreUnavailableError(LedgerError):
    """Raised when the attendance store cannot be reached."""


@dataclass(frozen=True)
class AttendanceRecord:
    id: str
    student_id: str
    event_id: str
    confidence: float
    status: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "event_id": self.event_id,
            "confidence": self.confidence,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
        }


class RecordOutcome(NamedTuple):
    record: AttendanceRecord
    created: bool


class AttendanceStore(Protocol):
    """Persistence contract used by :class:`AttendanceLedger`."""

    def find_attendance(self, student_id: str, event_id: str) -> Optional[AttendanceRecord]:
        ...

    def insert_attendance(self, record: AttendanceRecord) -> Tuple[AttendanceRecord, bool]:
        """Insert unless the key exists; return (stored record, inserted?)."""
        ...

    def list_attendance_for_event(self, event_id: str) -> List[AttendanceRecord]:
        ...


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def derive_status(recognition_time: datetime, event_start_time: datetime) -> str:
    if as_utc(recognition_time) > as_utc(event_start_time):
        return STATUS_LATE
    return STATUS_PRESENT


class InMemoryAttendanceStore:
    """Lock-guarded dict store; same uniqueness contract as the SQLite one."""

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], AttendanceRecord] = {}
        self._lock = threading.Lock()

    def find_attendance(self, student_id: str, event_id: str) -> Optional[AttendanceRecord]:
        with self._lock:
            return self._records.get((student_id, event_id))

    def insert_attendance(self, record: AttendanceRecord) -> Tuple[AttendanceRecord, bool]:
        key = (record.student_id, record.event_id)
        with self._lock:
            existing = self._records.get(key)
            if existing is not None:
                return existing, False
            self._records[key] = record
            return record, True

    def list_attendance_for_event(self, event_id: str) -> List[AttendanceRecord]:
        with self._lock:
            rows = [r for (_, ev), r in self._records.items() if ev == event_id]
        return sorted(rows, key=lambda r: r.timestamp)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class AttendanceLedger:
    """Append-only, uniqueness-constrained attendance recorder."""

    def __init__(self, store: AttendanceStore, logger: Optional[logging.Logger] = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    def record(
        self,
        student_id: str,
        event_id: str,
        confidence: float,
        recognition_time: datetime,
        event_start_time: datetime,
    ) -> RecordOutcome:
        """Record attendance unless present already; report whether it inserted."""
        if not student_id or not event_id:
            raise ValueError("student_id and event_id are required")
        confidence = float(confidence)
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {confidence}")

        existing = self._store.find_attendance(student_id, event_id)
        if existing is not None:
            self._logger.debug("[Ledger] %s already recorded for event %s", student_id, event_id)
            return RecordOutcome(existing, False)

        recognized_at = as_utc(recognition_time)
        candidate = AttendanceRecord(
            id=str(uuid.uuid4()),
            student_id=student_id,
            event_id=event_id,
            confidence=confidence,
            status=derive_status(recognized_at, event_start_time),
            timestamp=recognized_at,
        )
        stored, created = self._store.insert_attendance(candidate)
        if created:
            self._logger.info(
                "[Ledger] Recorded %s for event %s as %s (confidence %.3f)",
                student_id,
                event_id,
                stored.status,
                stored.confidence,
            )
        else:
            self._logger.info(
                "[Ledger] Concurrent duplicate for %s / %s resolved to %s",
                student_id,
                event_id,
                stored.id,
            )
        return RecordOutcome(stored, created)

    def record_if_absent(
        self,
        student_id: str,
        event_id: str,
        confidence: float,
        recognition_time: datetime,
        event_start_time: datetime,
    ) -> AttendanceRecord:
        return self.record(student_id, event_id, confidence, recognition_time, event_start_time).record

    def has_record(self, student_id: str, event_id: str) -> bool:
        return self._store.find_attendance(student_id, event_id) is not None

    def list_for_event(self, event_id: str) -> List[AttendanceRecord]:
        return self._store.list_attendance_for_event(event_id)


__all__ = [
    "STATUS_PRESENT",
    "STATUS_LATE",
    "STATUS_ABSENT",
    "VALID_STATUSES",
    "LedgerError",
    "StoreUnavailableError",
    "AttendanceRecord",
    "RecordOutcome",
    "AttendanceStore",
    "AttendanceLedger",
    "InMemoryAttendanceStore",
    "as_utc",
    "derive_status",
]
