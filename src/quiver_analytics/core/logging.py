"""Logging helpers for Quiver Analytics."""
from __future__ import annotations

from logging.config import dictConfig


DEFAULT_LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "loggers": {
        "quiver": {
            "level": "INFO",
            "handlers": ["console"],
            "propagate": False,
        }
    },
}


def setup_logging(level: str = "INFO") -> None:
    """Configure the ``quiver`` logger hierarchy using dictConfig.

    Only the library's own loggers are touched so the host application's
    root configuration is left alone.
    """

    config = DEFAULT_LOGGING_CONFIG.copy()
    quiver_logger = {**config["loggers"]["quiver"], "level": level.upper()}
    config = {**config, "loggers": {"quiver": quiver_logger}}
    dictConfig(config)
