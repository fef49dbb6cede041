"""Video metadata API blueprint."""
import logging

from flask import Blueprint, current_app, jsonify
from werkzeug.exceptions import BadRequest

from convert_app.api.conversions import CONTENT_ID_PATTERN
from utils.auth import require_api_key

bp = Blueprint('videos', __name__)
logger = logging.getLogger(__name__)


@bp.route('/<content_id>', methods=['GET'])
@require_api_key
def video_info(content_id):
    """Get title, thumbnail, duration and available qualities for a content id."""
    if not CONTENT_ID_PATTERN.match(content_id):
        raise BadRequest('Invalid content id')

    logger.info(f"Video info request: {content_id}")
    info = current_app.extensions['catalog_client'].get_video_info(content_id)
    return jsonify(info)
