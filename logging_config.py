"""
Logging configuration for the attendance system
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path


def setup_logging(app, log_level='INFO', log_dir='logs', max_log_size=10*1024*1024, backup_count=5):
    """
    Configure logging for the Flask application

    Args:
        app: Flask app instance
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: directory for the rotating log files
        max_log_size: maximum size of one log file (bytes)
        backup_count: number of rotated files to keep
    """

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, str(log_level).upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'attendance_system.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'errors.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    logging.getLogger('recognition').setLevel(level)
    logging.getLogger('database').setLevel(level)

    app.logger.setLevel(level)

    app.logger.info("=" * 50)
    app.logger.info("ATTENDANCE SYSTEM STARTUP")
    app.logger.info(f"Timestamp: {datetime.now().isoformat()}")
    app.logger.info(f"Log Level: {logging.getLevelName(level)}")
    app.logger.info(f"Log Directory: {log_dir.absolute()}")
    app.logger.info("=" * 50)


class RecognitionLogger:
    """Logger for the detect -> match -> record pipeline"""

    def __init__(self):
        self.logger = logging.getLogger('recognition')

    def log_face_recognized(self, student_id, distance, confidence):
        self.logger.info(
            f"Face recognized - Student ID: {student_id}, Distance: {distance:.4f}, Confidence: {confidence:.3f}"
        )

    def log_no_match(self, registry_size):
        self.logger.debug(f"Face detected but not recognized - Registry size: {registry_size}")

    def log_attendance_marked(self, student_id, event_id, status, confidence=None):
        confidence_info = f", Confidence: {confidence:.3f}" if confidence is not None else ""
        self.logger.info(
            f"Attendance marked - Student ID: {student_id}, Event: {event_id}, Status: {status}{confidence_info}"
        )

    def log_already_marked(self, student_id, event_id):
        self.logger.debug(f"Already marked - Student ID: {student_id}, Event: {event_id}")

    def log_enrollment(self, student_id, sample_count):
        self.logger.info(f"Enrollment complete - Student ID: {student_id}, Samples: {sample_count}")

    def log_recognition_error(self, error_message):
        self.logger.error(f"Recognition error - {error_message}")


class DatabaseLogger:
    """Logger for database operations"""

    def __init__(self):
        self.logger = logging.getLogger('database')

    def log_error(self, operation, error_message):
        self.logger.error(f"DB Error - Operation: {operation}, Error: {error_message}")


recognition_logger = RecognitionLogger()
database_logger = DatabaseLogger()
