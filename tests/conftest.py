import threading
from datetime import datetime, timezone

import numpy as np
import pytest

from app import create_app
from database import DatabaseManager


class FakeFrameSource:
    """Returns queued frames in order, then repeats the last one."""

    def __init__(self, frames=None, error=None):
        self.frames = list(frames or ["frame"])
        self.error = error
        self.reads = 0
        self.stops = 0
        self.low_light = False

    def read(self):
        self.reads += 1
        if self.error is not None:
            raise self.error
        if len(self.frames) > 1:
            return self.frames.pop(0)
        return self.frames[0]

    def stop(self):
        self.stops += 1


class FakeOracle:
    """Maps frames to descriptors; can block or fail on demand."""

    def __init__(self, descriptors=None, default=None, error=None):
        self.descriptors = dict(descriptors or {})
        self.default = default
        self.error = error
        self.calls = 0
        self.gate = None
        self.entered = threading.Event()

    def detect(self, frame):
        self.calls += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.descriptors.get(frame, self.default)


class StubEvents:
    def __init__(self, events=(), active=None):
        self.events = {event.id: event for event in events}
        self.active = active

    def get_event(self, event_id):
        return self.events.get(event_id)

    def get_active_event(self):
        return self.events.get(self.active) if self.active else None


class StubRegistry:
    def __init__(self, entries=()):
        self.entries = [(student_id, np.asarray(vec, dtype=float)) for student_id, vec in entries]

    def list_trained(self):
        return list(self.entries)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(tmp_path / "attendance.db", timeout=5.0)


@pytest.fixture
def frame_source():
    return FakeFrameSource()


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def app(tmp_path, frame_source, oracle):
    application = create_app(
        overrides={
            'TESTING': True,
            'DATABASE_PATH': str(tmp_path / "app.db"),
            'LOG_DIR': tmp_path / "logs",
            'LOG_LEVEL': 'DEBUG',
            'DESCRIPTOR_LENGTH': 2,
            'ENROLLMENT_SAMPLES': 3,
            'ENROLLMENT_MIN_SAMPLES': 3,
            'ENROLLMENT_CAPTURE_MIN_SAMPLES': 3,
            'ENROLLMENT_INTERVAL_MS': 0,
            'ENROLLMENT_MAX_ATTEMPTS': 10,
            'SCAN_INTERVAL_MS': 60000,
            'ORACLE_TIMEOUT_SECONDS': 1.0,
        },
        frame_source=frame_source,
        oracle=oracle,
    )
    yield application
    application.extensions['attendance']['session'].stop()


@pytest.fixture
def client(app):
    return app.test_client()
