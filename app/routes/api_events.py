"""
API routes for events
Event CRUD and the process-wide active event
"""
from flask import Blueprint, current_app, jsonify

from app.globals import get_db, get_session_loop
from app.utils import get_request_data, parse_datetime_safe
from core.session import STATE_PROCESSING, STATE_SCANNING

events_api_bp = Blueprint('events_api', __name__, url_prefix='/api/events')


def _serialize_event(event, active_id=None):
    if event is None:
        return None
    payload = event.to_dict()
    payload['is_active'] = active_id is not None and event.id == active_id
    return payload


def _active_event_id(db):
    active = db.get_active_event()
    return active.id if active else None


@events_api_bp.route('', methods=['GET'])
def list_events():
    """All events, most recent start first."""
    try:
        db = get_db()
        active_id = _active_event_id(db)
        return jsonify({'success': True, 'data': [_serialize_event(e, active_id) for e in db.list_events()]})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@events_api_bp.route('', methods=['POST'])
def create_event():
    try:
        data = get_request_data()
        name = str(data.get('name') or '').strip()
        start_time = parse_datetime_safe(data.get('start_time'))
        description = data.get('description')

        if not name:
            return jsonify({'success': False, 'message': 'name is required'}), 400
        if start_time is None:
            return jsonify({'success': False, 'message': 'start_time must be an ISO-8601 timestamp'}), 400

        event = get_db().create_event(name, start_time, description)
        return jsonify({'success': True, 'message': 'Event created', 'event': _serialize_event(event)}), 201
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@events_api_bp.route('/active', methods=['GET'])
def get_active_event():
    try:
        event = get_db().get_active_event()
        return jsonify({'success': True, 'event': _serialize_event(event, event.id if event else None)})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@events_api_bp.route('/active/<event_id>', methods=['POST'])
def set_active_event(event_id):
    """Activate an event; a running session switches to it on its next tick."""
    try:
        db = get_db()
        if not db.set_active_event(event_id):
            return jsonify({'success': False, 'message': 'Event not found'}), 404

        loop = get_session_loop()
        if loop.config is not None:
            loop.select_event(event_id)

        event = db.get_event(event_id)
        return jsonify({'success': True, 'message': 'Active event set', 'event': _serialize_event(event, event_id)})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@events_api_bp.route('/active', methods=['DELETE'])
def clear_active_event():
    try:
        get_db().clear_active_event()
        return jsonify({'success': True, 'message': 'Active event cleared'})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@events_api_bp.route('/<event_id>', methods=['GET'])
def get_event(event_id):
    try:
        db = get_db()
        event = db.get_event(event_id)
        if event is None:
            return jsonify({'success': False, 'message': 'Event not found'}), 404
        return jsonify({'success': True, 'event': _serialize_event(event, _active_event_id(db))})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@events_api_bp.route('/<event_id>', methods=['PUT'])
def update_event(event_id):
    try:
        data = get_request_data()
        start_time = None
        if data.get('start_time') is not None:
            start_time = parse_datetime_safe(data.get('start_time'))
            if start_time is None:
                return jsonify({'success': False, 'message': 'start_time must be an ISO-8601 timestamp'}), 400
        name = data.get('name')
        if name is not None and not str(name).strip():
            return jsonify({'success': False, 'message': 'name cannot be empty'}), 400

        db = get_db()
        event = db.update_event(
            event_id,
            name=str(name).strip() if name is not None else None,
            start_time=start_time,
            description=data.get('description'),
        )
        if event is None:
            return jsonify({'success': False, 'message': 'Event not found'}), 404

        loop = get_session_loop()
        if loop.config is not None and loop.config.event.id == event_id:
            loop.select_event(event_id)
        return jsonify({'success': True, 'message': 'Event updated', 'event': _serialize_event(event, _active_event_id(db))})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@events_api_bp.route('/<event_id>', methods=['DELETE'])
def delete_event(event_id):
    """Delete an event; its attendance records are kept.

    A session scanning for the event is stopped first.
    """
    try:
        db = get_db()
        if db.get_event(event_id) is None:
            return jsonify({'success': False, 'message': 'Event not found'}), 404

        session_stopped = False
        loop = get_session_loop()
        config = loop.config
        if config is not None and config.event.id == event_id and loop.state in (STATE_SCANNING, STATE_PROCESSING):
            loop.stop()
            session_stopped = True
            current_app.logger.info("[Events] Stopped the session for deleted event %s", event_id)

        if not db.delete_event(event_id):
            return jsonify({'success': False, 'message': 'Event not found'}), 404
        return jsonify({'success': True, 'message': 'Event deleted', 'session_stopped': session_stopped})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500
