"""
Event Broadcaster - Server-Sent Events fan-out
Pushes session and attendance events to every connected dashboard
"""
import json
import queue
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List


class EventBroadcaster:
    """One bounded queue per SSE client; slow clients are dropped"""

    def __init__(self, queue_size: int = 50, logger=None):
        self.clients: List[queue.Queue] = []
        self.clients_lock = threading.Lock()
        self.queue_size = queue_size
        self.logger = logger

    def add_client(self) -> queue.Queue:
        client_queue = queue.Queue(maxsize=self.queue_size)
        with self.clients_lock:
            self.clients.append(client_queue)
            total = len(self.clients)
        if self.logger:
            self.logger.info(f"[SSE] New client connected. Total: {total}")
        return client_queue

    def remove_client(self, client_queue: queue.Queue):
        with self.clients_lock:
            if client_queue not in self.clients:
                return
            self.clients.remove(client_queue)
            remaining = len(self.clients)
        if self.logger:
            self.logger.info(f"[SSE] Client disconnected. Remaining: {remaining}")

    def broadcast_event(self, event_data: Dict[str, Any]):
        """
        Broadcast an event to all clients

        Args:
            event_data: dictionary with
                - type: event name ('attendance_recorded', 'face_recognized', 'session_status')
                - data: JSON-serialisable payload
                - timestamp: optional, filled in when missing
        """
        event_data = dict(event_data)
        event_data.setdefault('timestamp', datetime.now(timezone.utc).isoformat())
        message = self.format_sse_message(event_data)

        full_clients = []
        with self.clients_lock:
            for client_queue in self.clients:
                try:
                    client_queue.put_nowait(message)
                except queue.Full:
                    full_clients.append(client_queue)
            count = len(self.clients)

        for client_queue in full_clients:
            if self.logger:
                self.logger.warning("[SSE] Client queue full, dropping client")
            self.remove_client(client_queue)

        if self.logger and count:
            self.logger.debug(f"[SSE] Broadcast {event_data.get('type', 'unknown')} to {count} clients")

    @staticmethod
    def format_sse_message(event_data: Dict[str, Any]) -> str:
        event_type = event_data.get('type', 'message')
        return f"event: {event_type}\ndata: {json.dumps(event_data, default=str)}\n\n"

    def get_client_count(self) -> int:
        with self.clients_lock:
            return len(self.clients)

    def cleanup(self):
        with self.clients_lock:
            self.clients.clear()
        if self.logger:
            self.logger.info("[SSE] All clients removed")
