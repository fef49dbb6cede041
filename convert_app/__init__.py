"""Flask application factory following Flask best practices."""
import atexit
import dataclasses
import logging
import os
from typing import Optional, Tuple

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_socketio import SocketIO

from utils.config import AppConfig, get_app_config
from utils.logging import configure_logging


def create_app(config_override: Optional[dict] = None, service=None) -> Tuple[Flask, SocketIO]:
    """Create and configure Flask application using application factory pattern.

    Args:
        config_override: Optional configuration overrides for testing. Keys
            naming ``AppConfig`` fields replace those fields; anything else is
            set on ``app.config``.
        service: Optional pre-built ConversionService (testing)

    Returns:
        Tuple of (Flask app instance, SocketIO instance)
    """
    app = Flask(__name__)

    # Setup logging
    configure_logging()

    app.config['TESTING'] = os.getenv('FLASK_ENV') == 'testing'
    config = _apply_overrides(app, get_app_config(), config_override or {})
    app.config['APP_CONFIG'] = config

    # Configure CORS
    CORS(app, origins=list(config.allowed_origins))

    # Per-client request budget shared by every route
    Limiter(
        get_remote_address,
        app=app,
        default_limits=[config.rate_limit] if config.rate_limit else [],
        storage_uri="memory://",
        headers_enabled=True,
    )

    init_services(app, config, service)

    socketio = SocketIO(
        app,
        cors_allowed_origins=list(config.allowed_origins) if config.allowed_origins != ("*",) else "*",
        async_mode=config.socketio_async_mode,
        logger=False,
        engineio_logger=False
    )

    # Register blueprints
    register_blueprints(app)

    # Register WebSocket handlers (progress push)
    register_socketio_handlers(socketio, app)

    # Register error handlers
    register_error_handlers(app)

    return app, socketio


def _apply_overrides(app: Flask, config: AppConfig, overrides: dict) -> AppConfig:
    field_names = {f.name for f in dataclasses.fields(AppConfig)}
    config_fields = {k: v for k, v in overrides.items() if k in field_names}
    for key, value in overrides.items():
        if key not in field_names:
            app.config[key] = value
    if config_fields:
        config = dataclasses.replace(config, **config_fields)
    return config


def init_services(app: Flask, config: AppConfig, service=None) -> None:
    """Create the conversion service and catalog client owned by this app."""
    from convert_app.clients.catalog import CatalogClient
    from convert_app.services.conversion import ConversionService

    if service is None:
        service = ConversionService(config)
        atexit.register(service.shutdown)

    os.makedirs(config.work_dir, exist_ok=True)
    app.extensions['conversion_service'] = service
    app.extensions['catalog_client'] = CatalogClient(config.downloader)
    logging.info(f"Conversion service ready (work_dir={config.work_dir})")


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    # Import blueprints here to avoid circular imports
    from convert_app.api.health import bp as health_bp
    from convert_app.api.conversions import bp as conversions_bp
    from convert_app.api.videos import bp as videos_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(conversions_bp, url_prefix='/conversions')
    app.register_blueprint(videos_bp, url_prefix='/videos')


def register_socketio_handlers(socketio: SocketIO, app: Flask) -> None:
    """Register WebSocket event handlers."""
    from convert_app.sockets.progress_stream import init_progress_stream_handlers

    init_progress_stream_handlers(socketio, app.extensions['conversion_service'])
    logging.info("WebSocket progress handlers registered successfully")


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""
    from flask import jsonify
    from werkzeug.exceptions import HTTPException
    from utils.exceptions import ServiceError, FetchFailedError, TranscodeSpawnError

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': getattr(error, 'description', None) or 'Bad request'}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(429)
    def rate_limited(error):
        app.logger.warning(f"Rate limit exceeded: {error.description}")
        return jsonify({'error': 'Too many requests, please try again later.'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}")
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(FetchFailedError)
    def handle_fetch_error(error):
        app.logger.error(f"Fetch error: {error}")
        return jsonify({'error': 'Failed to convert video', 'details': str(error)}), 500

    @app.errorhandler(TranscodeSpawnError)
    def handle_spawn_error(error):
        app.logger.error(f"Transcoder spawn error: {error}")
        return jsonify({'error': 'FFmpeg execution failed', 'details': str(error)}), 500

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        if error.status_code >= 500:
            app.logger.error(f"Service error: {error}")
        return jsonify({'error': str(error)}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.description}), error.code
