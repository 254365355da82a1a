"""
Service accessors for request handlers
Services are created once per app in create_app() and stored in app.extensions
"""
from flask import current_app

EXTENSION_KEY = 'attendance'


def _services():
    return current_app.extensions[EXTENSION_KEY]


def get_db():
    return _services()['db']


def get_ledger():
    return _services()['ledger']


def get_session_loop():
    return _services()['session']


def get_event_broadcaster():
    return _services()['broadcaster']
