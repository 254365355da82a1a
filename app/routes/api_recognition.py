"""
API routes for recognition
Matches descriptors computed in the browser against the registry
"""
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from app.globals import get_db, get_event_broadcaster, get_ledger
from app.utils import get_request_data, parse_bool, serialize_attendance_record
from core.descriptors import DescriptorError, to_descriptor
from core.ledger import StoreUnavailableError
from core.matcher import match
from logging_config import recognition_logger

recognition_api_bp = Blueprint('recognition_api', __name__, url_prefix='/api/recognition')


@recognition_api_bp.route('/match', methods=['POST'])
def match_descriptor():
    """
    Body: {"descriptor": [...], "record": false, "event_id": optional}

    With ``record`` true a successful match is written to the ledger for the
    given (or active) event.
    """
    data = get_request_data()
    try:
        live = to_descriptor(data.get('descriptor'), current_app.config['DESCRIPTOR_LENGTH'])
    except DescriptorError as e:
        return jsonify({'success': False, 'message': str(e)}), 400

    try:
        db = get_db()
        registry = db.list_trained()
        result = match(live, registry, current_app.config['FACE_DISTANCE_THRESHOLD'])
        if result is None:
            recognition_logger.log_no_match(len(registry))
            return jsonify({'success': True, 'matched': False, 'registry_size': len(registry)})

        recognition_logger.log_face_recognized(result.student_id, result.distance, result.confidence)
        student = db.get_student(result.student_id)
        payload = {
            'success': True,
            'matched': True,
            'student_id': result.student_id,
            'full_name': student['full_name'] if student else None,
            'distance': result.distance,
            'confidence': result.confidence,
        }

        if not parse_bool(data.get('record'), default=False):
            return jsonify(payload)

        event = db.get_event(data['event_id']) if data.get('event_id') else db.get_active_event()
        if event is None:
            return jsonify({'success': False, 'message': 'Event not found or no active event'}), 404

        outcome = get_ledger().record(
            result.student_id,
            event.id,
            result.confidence,
            datetime.now(timezone.utc),
            event.start_time,
        )
    except StoreUnavailableError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        recognition_logger.log_recognition_error(str(e))
        return jsonify({'success': False, 'message': str(e)}), 500

    record = serialize_attendance_record(outcome.record, payload['full_name'])
    payload['created'] = outcome.created
    payload['record'] = record
    if outcome.created:
        recognition_logger.log_attendance_marked(result.student_id, event.id, outcome.record.status, result.confidence)
        get_event_broadcaster().broadcast_event({'type': 'attendance_recorded', 'data': record})
    else:
        recognition_logger.log_already_marked(result.student_id, event.id)
    return jsonify(payload)
