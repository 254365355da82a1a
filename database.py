"""
Database module for the attendance system
SQLite persistence for students, events, the active event and the attendance ledger
"""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from core.descriptors import Descriptor, DescriptorError, descriptor_to_list, to_descriptor
from core.events import EventInfo, parse_instant
from core.ledger import AttendanceRecord, StoreUnavailableError, VALID_STATUSES, as_utc
from logging_config import database_logger

logger = logging.getLogger(__name__)

ACTIVE_EVENT_KEY = 'active_event_id'

# Fixed-width UTC text so that lexical order == chronological order
_INSTANT_FORMAT = '%Y-%m-%dT%H:%M:%S.%f+00:00'


def format_instant(value: datetime) -> str:
    return as_utc(value).strftime(_INSTANT_FORMAT)


class DatabaseManager:
    def __init__(self, db_path="attendance_system.db", timeout=10.0, descriptor_length=None):
        self.db_path = str(db_path)
        self.timeout = timeout
        self.descriptor_length = descriptor_length
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Open a connection; commit on success, roll back on error, always close."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @contextmanager
    def _store_guard(self, operation):
        """Map connectivity failures on ledger paths to StoreUnavailableError."""
        try:
            yield
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            database_logger.log_error(operation, str(exc))
            raise StoreUnavailableError(f"Attendance store unavailable during {operation}: {exc}") from exc

    def init_database(self):
        """Create tables and indexes"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS students (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id VARCHAR(50) UNIQUE NOT NULL,
                    full_name VARCHAR(100) NOT NULL,
                    email VARCHAR(100),
                    face_descriptor TEXT,
                    enrolled_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            self._ensure_column(cursor, 'students', 'email', 'VARCHAR(100)')
            self._ensure_column(cursor, 'students', 'enrolled_at', 'TIMESTAMP')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS events (
                    id VARCHAR(36) PRIMARY KEY,
                    name VARCHAR(150) NOT NULL,
                    start_time TEXT NOT NULL,
                    description TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # No foreign keys: attendance history outlives students and events
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance (
                    id VARCHAR(36) PRIMARY KEY,
                    student_id VARCHAR(50) NOT NULL,
                    event_id VARCHAR(36) NOT NULL,
                    confidence REAL NOT NULL,
                    status VARCHAR(10) NOT NULL CHECK (status IN ('present', 'late', 'absent')),
                    timestamp TEXT NOT NULL,
                    UNIQUE (student_id, event_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS settings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    setting_key VARCHAR(50) UNIQUE NOT NULL,
                    setting_value TEXT,
                    description TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_event ON attendance(event_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance(student_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_timestamp ON attendance(timestamp)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_events_start ON events(start_time)')

        logger.info("Database initialized at %s", self.db_path)

    def _ensure_column(self, cursor, table_name, column_name, column_def):
        """Add a column to an existing table if an older schema lacks it"""
        cursor.execute(f"PRAGMA table_info({table_name})")
        columns = [row[1] for row in cursor.fetchall()]
        if column_name in columns:
            return
        cursor.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_def}")
        logger.info("Added column %s.%s", table_name, column_name)

    # === SETTINGS ===

    def get_setting(self, key, default=None):
        with self.get_connection() as conn:
            row = conn.execute(
                'SELECT setting_value FROM settings WHERE setting_key = ?', (key,)
            ).fetchone()
            return row['setting_value'] if row else default

    def set_setting(self, key, value, description=None):
        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO settings (setting_key, setting_value, description, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(setting_key) DO UPDATE SET
                    setting_value = excluded.setting_value,
                    updated_at = CURRENT_TIMESTAMP
            ''', (key, value, description))

    def delete_setting(self, key):
        with self.get_connection() as conn:
            conn.execute('DELETE FROM settings WHERE setting_key = ?', (key,))

    # === STUDENTS ===

    def _student_row_to_dict(self, row):
        if row is None:
            return None
        student = dict(row)
        raw = student.pop('face_descriptor', None)
        student['face_descriptor'] = json.loads(raw) if raw else None
        student['has_descriptor'] = raw is not None
        return student

    def add_student(self, student_id, full_name, email=None):
        """Add a student; returns False when the student_id already exists"""
        with self.get_connection() as conn:
            try:
                conn.execute('''
                    INSERT INTO students (student_id, full_name, email)
                    VALUES (?, ?, ?)
                ''', (student_id, full_name, email))
            except sqlite3.IntegrityError as e:
                logger.error("Student ID %s already exists: %s", student_id, e)
                return False
        logger.info("Added student: %s (%s)", full_name, student_id)
        return True

    def get_student(self, student_id):
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM students WHERE student_id = ?', (student_id,)).fetchone()
            return self._student_row_to_dict(row)

    def list_students(self):
        with self.get_connection() as conn:
            rows = conn.execute('SELECT * FROM students ORDER BY full_name, id').fetchall()
            return [self._student_row_to_dict(row) for row in rows]

    def update_student(self, student_id, **kwargs):
        """Update name/email of a student"""
        allowed = {'full_name', 'email'}
        updates = {k: v for k, v in kwargs.items() if k in allowed and v is not None}
        if not updates:
            return False
        assignments = ', '.join(f"{column} = ?" for column in updates)
        with self.get_connection() as conn:
            cursor = conn.execute(
                f'UPDATE students SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE student_id = ?',
                (*updates.values(), student_id),
            )
            return cursor.rowcount > 0

    def delete_student(self, student_id):
        """Remove a student; attendance rows referencing it are kept"""
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM students WHERE student_id = ?', (student_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted student %s", student_id)
        return deleted

    def set_student_descriptor(self, student_id, descriptor: Descriptor):
        """Attach (or overwrite) the reference descriptor of a student"""
        payload = json.dumps(descriptor_to_list(descriptor))
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE students
                SET face_descriptor = ?, enrolled_at = ?, updated_at = CURRENT_TIMESTAMP
                WHERE student_id = ?
            ''', (payload, format_instant(datetime.now(timezone.utc)), student_id))
            return cursor.rowcount > 0

    def clear_student_descriptor(self, student_id):
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE students
                SET face_descriptor = NULL, enrolled_at = NULL, updated_at = CURRENT_TIMESTAMP
                WHERE student_id = ?
            ''', (student_id,))
            return cursor.rowcount > 0

    def list_trained(self) -> List[Tuple[str, Descriptor]]:
        """Registry read: (student_id, descriptor) for enrolled students, in insertion order"""
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT student_id, face_descriptor FROM students
                WHERE face_descriptor IS NOT NULL
                ORDER BY id
            ''').fetchall()

        registry = []
        for row in rows:
            try:
                descriptor = to_descriptor(json.loads(row['face_descriptor']), self.descriptor_length)
            except (ValueError, DescriptorError) as exc:
                logger.warning("Skipping malformed descriptor for %s: %s", row['student_id'], exc)
                continue
            registry.append((row['student_id'], descriptor))
        return registry

    # === EVENTS ===

    def _row_to_event(self, row):
        if row is None:
            return None
        return EventInfo(
            id=row['id'],
            name=row['name'],
            start_time=parse_instant(row['start_time']),
            description=row['description'],
        )

    def create_event(self, name, start_time, description=None) -> EventInfo:
        event_id = str(uuid.uuid4())
        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO events (id, name, start_time, description)
                VALUES (?, ?, ?, ?)
            ''', (event_id, name, format_instant(start_time), description))
        logger.info("Created event %s (%s)", name, event_id)
        return self.get_event(event_id)

    def get_event(self, event_id) -> Optional[EventInfo]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM events WHERE id = ?', (event_id,)).fetchone()
            return self._row_to_event(row)

    def list_events(self) -> List[EventInfo]:
        """All events, most recent start first"""
        with self.get_connection() as conn:
            rows = conn.execute('SELECT * FROM events ORDER BY start_time DESC').fetchall()
            return [self._row_to_event(row) for row in rows]

    def update_event(self, event_id, name=None, start_time=None, description=None):
        updates: Dict[str, Any] = {}
        if name is not None:
            updates['name'] = name
        if start_time is not None:
            updates['start_time'] = format_instant(start_time)
        if description is not None:
            updates['description'] = description
        if not updates:
            return self.get_event(event_id)
        assignments = ', '.join(f"{column} = ?" for column in updates)
        with self.get_connection() as conn:
            cursor = conn.execute(
                f'UPDATE events SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
                (*updates.values(), event_id),
            )
            if cursor.rowcount == 0:
                return None
        return self.get_event(event_id)

    def delete_event(self, event_id):
        """Delete an event; attendance survives, the active flag is cleared if it pointed here"""
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM events WHERE id = ?', (event_id,))
            deleted = cursor.rowcount > 0
            conn.execute(
                'DELETE FROM settings WHERE setting_key = ? AND setting_value = ?',
                (ACTIVE_EVENT_KEY, event_id),
            )
        if deleted:
            logger.info("Deleted event %s", event_id)
        return deleted

    def set_active_event(self, event_id):
        """Mark an event active; replaces any previously active event"""
        if self.get_event(event_id) is None:
            return False
        self.set_setting(ACTIVE_EVENT_KEY, event_id, 'Event used by default for recognition')
        logger.info("Active event set to %s", event_id)
        return True

    def clear_active_event(self):
        self.delete_setting(ACTIVE_EVENT_KEY)

    def get_active_event(self) -> Optional[EventInfo]:
        event_id = self.get_setting(ACTIVE_EVENT_KEY)
        if not event_id:
            return None
        return self.get_event(event_id)

    # === ATTENDANCE LEDGER STORE ===

    def _row_to_record(self, row):
        if row is None:
            return None
        return AttendanceRecord(
            id=row['id'],
            student_id=row['student_id'],
            event_id=row['event_id'],
            confidence=float(row['confidence']),
            status=row['status'],
            timestamp=parse_instant(row['timestamp']),
        )

    def find_attendance(self, student_id, event_id) -> Optional[AttendanceRecord]:
        with self._store_guard('find_attendance'):
            with self.get_connection() as conn:
                row = conn.execute(
                    'SELECT * FROM attendance WHERE student_id = ? AND event_id = ?',
                    (student_id, event_id),
                ).fetchone()
                return self._row_to_record(row)

    def get_attendance(self, record_id) -> Optional[AttendanceRecord]:
        with self._store_guard('get_attendance'):
            with self.get_connection() as conn:
                row = conn.execute('SELECT * FROM attendance WHERE id = ?', (record_id,)).fetchone()
                return self._row_to_record(row)

    def insert_attendance(self, record: AttendanceRecord) -> Tuple[AttendanceRecord, bool]:
        """Insert unless (student_id, event_id) exists; the UNIQUE key arbitrates races"""
        if record.status not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {record.status}")
        with self._store_guard('insert_attendance'):
            with self.get_connection() as conn:
                cursor = conn.execute('''
                    INSERT INTO attendance (id, student_id, event_id, confidence, status, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(student_id, event_id) DO NOTHING
                ''', (
                    record.id,
                    record.student_id,
                    record.event_id,
                    record.confidence,
                    record.status,
                    format_instant(record.timestamp),
                ))
                if cursor.rowcount == 1:
                    return record, True
                row = conn.execute(
                    'SELECT * FROM attendance WHERE student_id = ? AND event_id = ?',
                    (record.student_id, record.event_id),
                ).fetchone()
                return self._row_to_record(row), False

    def list_attendance_for_event(self, event_id) -> List[AttendanceRecord]:
        with self._store_guard('list_attendance_for_event'):
            with self.get_connection() as conn:
                rows = conn.execute(
                    'SELECT * FROM attendance WHERE event_id = ? ORDER BY timestamp',
                    (event_id,),
                ).fetchall()
                return [self._row_to_record(row) for row in rows]

    def list_attendance_for_student(self, student_id) -> List[AttendanceRecord]:
        with self.get_connection() as conn:
            rows = conn.execute(
                'SELECT * FROM attendance WHERE student_id = ? ORDER BY timestamp DESC',
                (student_id,),
            ).fetchall()
            return [self._row_to_record(row) for row in rows]

    def list_attendance_by_date_range(self, start, end) -> List[AttendanceRecord]:
        """Records whose timestamp falls within [start, end]"""
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM attendance
                WHERE timestamp >= ? AND timestamp <= ?
                ORDER BY timestamp
            ''', (format_instant(start), format_instant(end))).fetchall()
            return [self._row_to_record(row) for row in rows]

    def list_all_attendance(self) -> List[AttendanceRecord]:
        with self.get_connection() as conn:
            rows = conn.execute('SELECT * FROM attendance ORDER BY timestamp').fetchall()
            return [self._row_to_record(row) for row in rows]
