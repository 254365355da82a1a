"""
API routes for the server-side scanning session
"""
from flask import Blueprint, current_app, jsonify

from app.globals import get_session_loop
from app.utils import get_request_data
from core.ledger import StoreUnavailableError
from core.session import NoActiveEventError, SessionError

session_api_bp = Blueprint('session_api', __name__, url_prefix='/api/session')


@session_api_bp.route('/start', methods=['POST'])
def start_session():
    """Start scanning for the given event, or the active one."""
    data = get_request_data()
    loop = get_session_loop()
    try:
        loop.start(data.get('event_id') or None)
    except NoActiveEventError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except SessionError as e:
        return jsonify({'success': False, 'message': str(e)}), 409
    except StoreUnavailableError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        current_app.logger.error("[Session] Start failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
    return jsonify({'success': True, 'message': 'Session started', 'status': loop.status()})


@session_api_bp.route('/stop', methods=['POST'])
def stop_session():
    loop = get_session_loop()
    loop.stop()
    return jsonify({'success': True, 'message': 'Session stopped', 'status': loop.status()})


@session_api_bp.route('/status', methods=['GET'])
def session_status():
    return jsonify({'success': True, 'status': get_session_loop().status()})
