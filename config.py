# config.py - Configuration and constants for the attendance system

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Flask app configuration
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # descriptor payloads only

# Storage
DATABASE_PATH = os.getenv('DATABASE_PATH', 'attendance_system.db')
DB_TIMEOUT_SECONDS = float(os.getenv('DB_TIMEOUT_SECONDS', '10'))

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_DIR = Path(os.getenv('LOG_DIR', 'logs'))
LOG_MAX_BYTES = int(os.getenv('LOG_MAX_BYTES', str(10 * 1024 * 1024)))
LOG_BACKUP_COUNT = int(os.getenv('LOG_BACKUP_COUNT', '5'))

# Descriptor model (dlib / face-api.js produce 128 floats)
DESCRIPTOR_LENGTH = int(os.getenv('DESCRIPTOR_LENGTH', '128'))

# Face matching
FACE_DISTANCE_THRESHOLD = float(os.getenv('FACE_DISTANCE_THRESHOLD', '0.6'))

# Enrollment
ENROLLMENT_SAMPLES = max(1, int(os.getenv('ENROLLMENT_SAMPLES', '30')))
ENROLLMENT_MIN_SAMPLES = min(
    ENROLLMENT_SAMPLES,
    max(1, int(os.getenv('ENROLLMENT_MIN_SAMPLES', '3'))),
)
# Minimum face frames for server-camera capture (defaults to the full set)
ENROLLMENT_CAPTURE_MIN_SAMPLES = min(
    ENROLLMENT_SAMPLES,
    max(1, int(os.getenv('ENROLLMENT_CAPTURE_MIN_SAMPLES', str(ENROLLMENT_SAMPLES)))),
)
ENROLLMENT_INTERVAL_MS =int(os.getenv('ENROLLMENT_INTERVAL_MS', '100'))
ENROLLMENT_MAX_ATTEMPTS = int(os.getenv('ENROLLMENT_MAX_ATTEMPTS', '300'))

# Session loop
SCAN_INTERVAL_MS = max(10, int(os.getenv('SCAN_INTERVAL_MS', '500')))
ORACLE_TIMEOUT_SECONDS = float(os.getenv('ORACLE_TIMEOUT_SECONDS', '2.0'))

# Camera configuration
CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', '0'))
CAMERA_WIDTH = int(os.getenv('CAMERA_WIDTH', '640'))
CAMERA_HEIGHT = int(os.getenv('CAMERA_HEIGHT', '480'))
CAMERA_WARMUP_FRAMES = int(os.getenv('CAMERA_WARMUP_FRAMES', '3'))
CAMERA_BUFFER_SIZE = int(os.getenv('CAMERA_BUFFER_SIZE', '2'))
LOW_LIGHT_THRESHOLD = float(os.getenv('LOW_LIGHT_THRESHOLD', '80'))

# Oracle (face_recognition / dlib)
ORACLE_MODEL = os.getenv('ORACLE_MODEL', 'hog')  # 'hog' or 'cnn'
ORACLE_NUM_JITTERS = int(os.getenv('ORACLE_NUM_JITTERS', '1'))

# SSE
SSE_QUEUE_SIZE = int(os.getenv('SSE_QUEUE_SIZE', '50'))
SSE_HEARTBEAT_SECONDS = float(os.getenv('SSE_HEARTBEAT_SECONDS', '30'))
