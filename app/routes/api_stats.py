"""
API routes for attendance statistics
"""
from datetime import date, datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from app.globals import get_db
from app.utils import summarize_attendance
from core.ledger import StoreUnavailableError

stats_api_bp = Blueprint('stats_api', __name__, url_prefix='/api/attendance')


@stats_api_bp.route('/stats', methods=['GET'])
def attendance_stats():
    """
    Present/late counts, average confidence, unique students today and the
    attendance rate against registered students.

    Query params: event_id (all records when omitted), date (YYYY-MM-DD,
    defaults to today in UTC).
    """
    event_id = request.args.get('event_id')
    day_raw = request.args.get('date')
    if day_raw:
        try:
            day = date.fromisoformat(day_raw)
        except ValueError:
            return jsonify({'success': False, 'message': 'date must be YYYY-MM-DD'}), 400
    else:
        day = datetime.now(timezone.utc).date()

    try:
        db = get_db()
        if event_id:
            if db.get_event(event_id) is None:
                return jsonify({'success': False, 'message': 'Event not found'}), 404
            records = db.list_attendance_for_event(event_id)
        else:
            records = db.list_all_attendance()
        total_students = len(db.list_students())
    except StoreUnavailableError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        current_app.logger.error("[Stats] Failed to compute statistics: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500

    stats = summarize_attendance(records, total_students, day)
    stats.update({'event_id': event_id, 'date': day.isoformat()})
    return jsonify({'success': True, 'stats': stats})
