"""
Data utilities
Request parsing and JSON serialisation helpers
"""
from flask import request

from core.events import parse_instant


def get_request_data():
    """JSON body or form fields as a plain dict."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def parse_bool(value, default=None):
    """
    Parse a boolean from a string, int or bool.
    Returns: True, False, or default when the value is not recognised.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in ('true', '1', 'yes', 'on'):
            return True
        if lower in ('false', '0', 'no', 'off'):
            return False
    return default


def parse_datetime_safe(value):
    """Aware UTC datetime from an ISO string, or None when missing/invalid."""
    if not value:
        return None
    try:
        return parse_instant(value)
    except ValueError:
        return None


def serialize_student_record(student, include_descriptor=False):
    """Student dict for JSON responses; the descriptor is omitted unless asked for."""
    if not student:
        return None
    result = dict(student)
    if not include_descriptor:
        result.pop('face_descriptor', None)
    return result


def serialize_attendance_record(record, full_name=None):
    if record is None:
        return None
    result = record.to_dict()
    if full_name is not None:
        result['full_name'] = full_name
    return result
