"""
Attendance statistics helpers
"""
from core.ledger import STATUS_LATE, STATUS_PRESENT, as_utc


def filter_by_status(records, status):
    if not status:
        return list(records)
    return [r for r in records if r.status == status]


def summarize_attendance(records, total_students, day):
    """
    Summary counters for a list of attendance records.

    ``day`` is the UTC date used for "unique students today"; the attendance
    rate is that count against ``total_students``.
    """
    records = list(records)
    present_count = sum(1 for r in records if r.status == STATUS_PRESENT)
    late_count = sum(1 for r in records if r.status == STATUS_LATE)
    average_confidence = (
        sum(r.confidence for r in records) / len(records) if records else 0.0
    )
    students_today = {r.student_id for r in records if as_utc(r.timestamp).date() == day}
    attendance_rate = (len(students_today) / total_students * 100) if total_students > 0 else 0.0

    return {
        'total_records': len(records),
        'present_count': present_count,
        'late_count': late_count,
        'average_confidence': round(average_confidence, 4),
        'unique_students_today': len(students_today),
        'total_students': total_students,
        'attendance_rate': round(attendance_rate, 2),
    }
