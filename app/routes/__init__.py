"""
Routes package
Registers every blueprint
"""
from .api_students import student_api_bp
from .api_events import events_api_bp
from .api_attendance import attendance_api_bp
from .api_recognition import recognition_api_bp
from .api_session import session_api_bp
from .api_stats import stats_api_bp
from .stream import stream_bp


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    app.register_blueprint(student_api_bp)
    app.register_blueprint(events_api_bp)
    app.register_blueprint(attendance_api_bp)
    app.register_blueprint(recognition_api_bp)
    app.register_blueprint(session_api_bp)
    app.register_blueprint(stats_api_bp)
    app.register_blueprint(stream_bp)

    app.logger.info("[STARTUP] Registered all blueprints")
