"""
Utils package
"""
from .data_utils import (
    get_request_data,
    parse_bool,
    parse_datetime_safe,
    serialize_student_record,
    serialize_attendance_record,
)
from .attendance_utils import filter_by_status, summarize_attendance

__all__ = [
    'get_request_data',
    'parse_bool',
    'parse_datetime_safe',
    'serialize_student_record',
    'serialize_attendance_record',
    'filter_by_status',
    'summarize_attendance',
]
