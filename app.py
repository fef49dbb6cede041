"""Development server for the conversion API (Flask + Socket.IO)."""

import logging
import os

from convert_app import create_app

app, socketio = create_app()
logger = logging.getLogger(__name__)


def main() -> None:
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', 3000))
    production = os.environ.get('FLASK_ENV') == 'production'

    logger.info(f"Media Conversion API listening on {host}:{port}")
    # socketio.run serves both HTTP routes and the /conversions progress namespace
    socketio.run(
        app,
        host=host,
        port=port,
        debug=not production,
        use_reloader=False,
        allow_unsafe_werkzeug=not production,
    )


if __name__ == '__main__':
    main()
