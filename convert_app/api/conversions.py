"""Conversion jobs API blueprint."""
import logging
import re

from flask import Blueprint, Response, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from models.job import MEDIA_TYPES
from utils.auth import require_api_key

bp = Blueprint('conversions', __name__)
logger = logging.getLogger(__name__)

CONTENT_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,64}$')


def get_conversion_service():
    """Conversion service owned by the current application."""
    return current_app.extensions['conversion_service']


@bp.route('', methods=['POST'])
@require_api_key
def start_conversion():
    """Start a conversion job.

    Accepts JSON with:
    - contentId: Identifier of the source content (required)
    - format: Output format or quality alias, e.g. ``mp3`` or ``720p`` (required)
    - type: ``audio`` or ``video`` (required)

    Blocks until the source has been fetched and the transcoder spawned.

    Returns:
    - jobId: Identifier to poll for progress and download the result
    """
    data = request.get_json(silent=True) or {}
    content_id = str(data.get('contentId') or '').strip()
    requested_format = str(data.get('format') or '').strip()
    media_type = str(data.get('type') or '').strip().lower()

    if not content_id or not requested_format or not media_type:
        raise BadRequest('Missing required fields: contentId, format, type')
    if not CONTENT_ID_PATTERN.match(content_id):
        raise BadRequest('Invalid contentId')
    if media_type not in MEDIA_TYPES:
        raise BadRequest(f"Invalid type. Must be one of: {', '.join(MEDIA_TYPES)}")

    logger.info(f"Conversion request: contentId={content_id}, format={requested_format}, type={media_type}")

    job = get_conversion_service().start_conversion(content_id, requested_format, media_type)
    return jsonify({'jobId': job.id})


@bp.route('/<job_id>/progress', methods=['GET'])
@require_api_key
def conversion_progress(job_id):
    """Report a job's progress and whether its artifact can be downloaded."""
    payload = get_conversion_service().get_progress(job_id)
    logger.debug(f"Progress response for {job_id}: {payload}")
    return jsonify(payload)


@bp.route('/<job_id>/file', methods=['GET'])
@require_api_key
def conversion_file(job_id):
    """Stream a finished artifact once; it is deleted afterwards."""
    delivery = get_conversion_service().open_delivery(job_id)

    response = Response(delivery.stream, mimetype='application/octet-stream')
    response.headers['Content-Disposition'] = f'attachment; filename="{delivery.filename}"'
    if delivery.size is not None:
        response.headers['Content-Length'] = str(delivery.size)
    return response
