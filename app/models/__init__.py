"""
Models Package - runtime services shared by the blueprints
"""

from .event_broadcaster import EventBroadcaster

__all__ = [
    'EventBroadcaster',
]
