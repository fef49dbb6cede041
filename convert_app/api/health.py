"""Health check API blueprint."""
from flask import Blueprint, current_app, jsonify
import logging

bp = Blueprint('health', __name__)
logger = logging.getLogger(__name__)


@bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint to verify service is running."""
    logger.info("Health check requested")
    service = current_app.extensions['conversion_service']

    return jsonify({
        "status": "healthy",
        "service": "Media Conversion API",
        "version": "1.0.0",
        "active_jobs": len(service.registry),
    })


@bp.route('/', methods=['GET'])
def root():
    """Root endpoint with API information."""
    return jsonify({
        "service": "Media Conversion API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": "/health",
            "videos": "/videos/{contentId}",
            "conversions": {
                "start": "POST /conversions",
                "progress": "/conversions/{jobId}/progress",
                "file": "/conversions/{jobId}/file"
            }
        }
    })
