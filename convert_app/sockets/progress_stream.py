"""WebSocket handlers pushing conversion progress to subscribed clients."""
import logging

from flask import current_app
from flask_socketio import emit, join_room, leave_room

logger = logging.getLogger(__name__)

NAMESPACE = '/conversions'


def init_progress_stream_handlers(socketio, service):
    """Initialize WebSocket event handlers for conversion progress.

    Clients emit ``subscribe`` with ``{"jobId": ...}`` and then receive a
    ``conversion_progress`` event with ``{jobId, progress, ready}`` right away
    and after every change.

    Args:
        socketio: Flask-SocketIO instance
        service: ConversionService whose jobs are reported
    """

    def push_progress(job_id, payload):
        socketio.emit('conversion_progress', payload, to=job_id, namespace=NAMESPACE)

    service.add_listener(push_progress)

    @socketio.on('subscribe', namespace=NAMESPACE)
    def handle_subscribe(data):
        """Join the room of a job and send its current progress."""
        job_id = (data or {}).get('jobId')
        payload = service.registry.snapshot(job_id) if job_id else None
        if payload is None:
            emit('conversion_error', {'jobId': job_id, 'error': 'Job not found'})
            return

        join_room(job_id)
        logger.debug(f"Client subscribed to job {job_id}")
        emit('conversion_progress', {'jobId': job_id, **payload})

    @socketio.on('unsubscribe', namespace=NAMESPACE)
    def handle_unsubscribe(data):
        """Leave the room of a job."""
        job_id = (data or {}).get('jobId')
        if job_id:
            leave_room(job_id)

    @socketio.on('connect', namespace=NAMESPACE)
    def handle_connect(auth=None):
        """Reject connections without the API key when one is configured."""
        expected = current_app.config['APP_CONFIG'].api_key
        if expected and (not auth or auth.get('apiKey') != expected):
            logger.warning("Progress stream connection rejected: invalid API key")
            return False
        return True
