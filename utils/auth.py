"""API key authentication for the conversion endpoints."""

from functools import wraps
import hmac
import logging

from flask import request, jsonify, current_app

logger = logging.getLogger(__name__)


def require_api_key(f):
    """Require the configured API key in the ``x-api-key`` header.

    When no key is configured the service runs open and the decorator is a
    pass-through.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config['APP_CONFIG'].api_key
        if not expected:
            return f(*args, **kwargs)

        provided = request.headers.get('x-api-key')
        if not provided:
            auth_error = {'reason': 'api_key_missing', 'message': 'API key is required'}
        elif not hmac.compare_digest(provided, expected):
            logger.warning("Invalid API key attempted")
            auth_error = {'reason': 'api_key_invalid', 'message': 'Invalid API key'}
        else:
            return f(*args, **kwargs)

        return jsonify({
            'error': 'Authentication required',
            'details': auth_error
        }), 401

    return decorated_function
