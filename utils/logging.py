"""Central logging configuration for the conversion service."""
from __future__ import annotations

import logging
import os

TEXT_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(threadName)s | %(message)s"
JSON_FORMAT = (
    "{\"timestamp\": \"%(asctime)s\", \"level\": \"%(levelname)s\", "
    "\"name\": \"%(name)s\", \"thread\": \"%(threadName)s\", "
    "\"message\": \"%(message)s\"}"
)

# Third-party loggers that are chatty at INFO: werkzeug logs every progress
# poll, engineio/socketio every packet.
NOISY_LOGGERS = ("werkzeug", "engineio.server", "socketio.server")


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return logging.Formatter(JSON_FORMAT)
    return logging.Formatter(TEXT_FORMAT)


def configure_logging() -> None:
    """Configure root logging handlers.

    ``LOG_FORMAT=json`` produces one JSON object per line so job lifecycle
    lines can be filtered by job id in a log platform; anything else gives
    the human readable format. Thread names are included because every job
    logs from its own ffmpeg reader and expiry timer threads.
    ``LOG_LEVEL`` sets the root level and ``THIRD_PARTY_LOG_LEVEL`` (default
    WARNING) the level of the noisy framework loggers.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    third_party_level = os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING").upper()

    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter(os.getenv("LOG_FORMAT", "text")))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
