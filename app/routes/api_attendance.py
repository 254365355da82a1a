"""
API routes for attendance
Ledger writes from clients, ledger queries and CSV export
"""
import csv
import io
from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, jsonify, request

from app.globals import get_db, get_event_broadcaster, get_ledger
from app.utils import filter_by_status, get_request_data, parse_datetime_safe, serialize_attendance_record
from core.ledger import VALID_STATUSES, StoreUnavailableError
from logging_config import recognition_logger

attendance_api_bp = Blueprint('attendance_api', __name__, url_prefix='/api/attendance')

CSV_COLUMNS = ['student_id', 'full_name', 'status', 'confidence', 'timestamp']


def _student_names(db):
    return {s['student_id']: s['full_name'] for s in db.list_students()}


def _resolve_event(db, event_id):
    if event_id:
        return db.get_event(event_id)
    return db.get_active_event()


@attendance_api_bp.route('', methods=['GET'])
def list_attendance():
    """
    Attendance records.

    Query params (first match wins): event_id, student_id, start+end (ISO-8601).
    Without filters every record is returned. `status` narrows any of them.
    """
    try:
        db = get_db()
        event_id = request.args.get('event_id')
        student_id = request.args.get('student_id')
        start_raw = request.args.get('start')
        end_raw = request.args.get('end')
        status = request.args.get('status')
        if status and status not in VALID_STATUSES:
            return jsonify({'success': False, 'message': f'Unknown status: {status}'}), 400

        if event_id:
            records = db.list_attendance_for_event(event_id)
        elif student_id:
            records = db.list_attendance_for_student(student_id)
        elif start_raw or end_raw:
            start = parse_datetime_safe(start_raw)
            end = parse_datetime_safe(end_raw)
            if start is None or end is None:
                return jsonify({'success': False, 'message': 'start and end must be ISO-8601 timestamps'}), 400
            records = db.list_attendance_by_date_range(start, end)
        else:
            records = db.list_all_attendance()
        records = filter_by_status(records, status)

        names = _student_names(db)
        data = [serialize_attendance_record(r, names.get(r.student_id)) for r in records]
        return jsonify({'success': True, 'data': data, 'count': len(data)})
    except StoreUnavailableError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@attendance_api_bp.route('', methods=['POST'])
def record_attendance():
    """
    Record attendance for a student matched client-side.

    Body: student_id, confidence, optional event_id (defaults to the active
    event) and optional timestamp (defaults to now). Status is derived from
    the event start time.
    """
    data = get_request_data()
    student_id = str(data.get('student_id') or '').strip()
    if not student_id:
        return jsonify({'success': False, 'message': 'student_id is required'}), 400

    try:
        confidence = float(data.get('confidence'))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'message': 'confidence must be a number'}), 400
    if not 0.0 <= confidence <= 1.0:
        return jsonify({'success': False, 'message': 'confidence must be within [0, 1]'}), 400

    recognized_at = datetime.now(timezone.utc)
    if data.get('timestamp'):
        recognized_at = parse_datetime_safe(data.get('timestamp'))
        if recognized_at is None:
            return jsonify({'success': False, 'message': 'timestamp must be an ISO-8601 timestamp'}), 400

    try:
        db = get_db()
        event = _resolve_event(db, data.get('event_id'))
        if event is None:
            return jsonify({'success': False, 'message': 'Event not found or no active event'}), 404
        student = db.get_student(student_id)
        if student is None:
            return jsonify({'success': False, 'message': 'Student not found'}), 404

        outcome = get_ledger().record(student_id, event.id, confidence, recognized_at, event.start_time)
    except StoreUnavailableError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500

    record = serialize_attendance_record(outcome.record, student['full_name'])
    if not outcome.created:
        recognition_logger.log_already_marked(student_id, event.id)
        return jsonify({'success': True, 'created': False, 'message': 'Already marked', 'record': record})

    recognition_logger.log_attendance_marked(student_id, event.id, outcome.record.status, confidence)
    get_event_broadcaster().broadcast_event({'type': 'attendance_recorded', 'data': record})
    return jsonify({'success': True, 'created': True, 'message': 'Attendance recorded', 'record': record}), 201


@attendance_api_bp.route('/export', methods=['GET'])
def export_attendance():
    """CSV export of one event's attendance (active event by default)."""
    try:
        db = get_db()
        event = _resolve_event(db, request.args.get('event_id'))
        if event is None:
            return jsonify({'success': False, 'message': 'Event not found or no active event'}), 404

        names = _student_names(db)
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_COLUMNS)
        for record in db.list_attendance_for_event(event.id):
            writer.writerow([
                record.student_id,
                names.get(record.student_id, ''),
                record.status,
                f"{record.confidence:.4f}",
                record.timestamp.isoformat(),
            ])
    except StoreUnavailableError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500

    current_app.logger.info("[Attendance] Exported event %s", event.id)
    filename = f"attendance_{event.id}.csv"
    return Response(
        buffer.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@attendance_api_bp.route('/<record_id>', methods=['GET'])
def get_attendance(record_id):
    try:
        db = get_db()
        record = db.get_attendance(record_id)
        if record is None:
            return jsonify({'success': False, 'message': 'Attendance record not found'}), 404
        student = db.get_student(record.student_id)
        full_name = student['full_name'] if student else None
        return jsonify({'success': True, 'record': serialize_attendance_record(record, full_name)})
    except StoreUnavailableError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500
