"""
App package initialization
Builds the Flask application and wires the attendance services
"""
import os

from flask import Flask

import config
from app.globals import EXTENSION_KEY
from app.models import EventBroadcaster
from core.ledger import AttendanceLedger
from core.session import SessionLoop
from core.vision import CameraFrameSource, FaceRecognitionOracle
from database import DatabaseManager
from logging_config import setup_logging


def _build_frame_source(app):
    return CameraFrameSource(
        index=app.config['CAMERA_INDEX'],
        width=app.config['CAMERA_WIDTH'],
        height=app.config['CAMERA_HEIGHT'],
        warmup_frames=app.config['CAMERA_WARMUP_FRAMES'],
        buffer_size=app.config['CAMERA_BUFFER_SIZE'],
        low_light_threshold=app.config['LOW_LIGHT_THRESHOLD'],
    )


def _build_oracle(app):
    return FaceRecognitionOracle(
        model=app.config['ORACLE_MODEL'],
        num_jitters=app.config['ORACLE_NUM_JITTERS'],
    )


def create_app(overrides=None, frame_source=None, oracle=None):
    """
    Factory function for the Flask application

    Args:
        overrides: config values applied on top of config.py (tests)
        frame_source: object with read()/stop(); defaults to the OpenCV camera
        oracle: object with detect(frame); defaults to face_recognition
    """
    app = Flask(__name__)
    app.config.from_object(config)
    if overrides:
        app.config.update(overrides)

    setup_logging(
        app,
        log_level=app.config['LOG_LEVEL'],
        log_dir=app.config['LOG_DIR'],
        max_log_size=app.config['LOG_MAX_BYTES'],
        backup_count=app.config['LOG_BACKUP_COUNT'],
    )

    app.logger.info(f"[STARTUP] Working directory: {os.getcwd()}")
    app.logger.info(f"[STARTUP] Database path: {os.path.abspath(app.config['DATABASE_PATH'])}")

    db = DatabaseManager(
        app.config['DATABASE_PATH'],
        timeout=app.config['DB_TIMEOUT_SECONDS'],
        descriptor_length=app.config['DESCRIPTOR_LENGTH'],
    )
    ledger = AttendanceLedger(db, logger=app.logger)
    broadcaster = EventBroadcaster(queue_size=app.config['SSE_QUEUE_SIZE'], logger=app.logger)

    frame_source = frame_source or _build_frame_source(app)
    oracle = oracle or _build_oracle(app)
    session = SessionLoop(
        frame_source=frame_source,
        oracle=oracle,
        registry=db,
        events=db,
        ledger=ledger,
        threshold=app.config['FACE_DISTANCE_THRESHOLD'],
        interval_ms=app.config['SCAN_INTERVAL_MS'],
        oracle_timeout=app.config['ORACLE_TIMEOUT_SECONDS'],
        descriptor_length=app.config['DESCRIPTOR_LENGTH'],
        broadcaster=broadcaster,
        logger=app.logger,
    )

    app.extensions[EXTENSION_KEY] = {
        'db': db,
        'ledger': ledger,
        'broadcaster': broadcaster,
        'session': session,
        'frame_source': frame_source,
        'oracle': oracle,
    }
    app.logger.info("[STARTUP] Services initialized (threshold=%.3f, scan interval=%sms)",
                    app.config['FACE_DISTANCE_THRESHOLD'], app.config['SCAN_INTERVAL_MS'])

    from app.routes import register_blueprints
    register_blueprints(app)

    return app
