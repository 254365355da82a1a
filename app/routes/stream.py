"""
API route for Server-Sent Events
"""
import json
import queue

from flask import Blueprint, Response, current_app, stream_with_context

from app.globals import get_event_broadcaster, get_session_loop

stream_bp = Blueprint('stream', __name__, url_prefix='/api')


@stream_bp.route('/stream')
def api_stream():
    """SSE stream of attendance_recorded, face_recognized and session_status events."""
    broadcaster = get_event_broadcaster()
    heartbeat = current_app.config['SSE_HEARTBEAT_SECONDS']
    initial_status = get_session_loop().status()
    client_queue = broadcaster.add_client()

    def event_stream():
        try:
            yield f"data: {json.dumps({'type': 'connected'})}\n\n"
            yield broadcaster.format_sse_message({'type': 'session_status', 'data': initial_status})
            while True:
                try:
                    yield client_queue.get(timeout=heartbeat)
                except queue.Empty:
                    # keep-alive
                    yield f"data: {json.dumps({'type': 'heartbeat'})}\n\n"
        finally:
            broadcaster.remove_client(client_queue)

    return Response(stream_with_context(event_stream()), mimetype='text/event-stream')
