"""Logging configuration."""
import logging
import logging.config

from src.core.config import settings


def setup_logging() -> None:
    """Configure root logging for the service."""

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": settings.LOG_LEVEL.upper(),
            },
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s", settings.LOG_LEVEL)
