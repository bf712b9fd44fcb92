"""
trustcota/logging_setup.py

Process-wide logging configuration (standard library logging via dictConfig).

All modules log through logging.getLogger(__name__), which places them under the
"trustcota" namespace configured here.
"""

from __future__ import annotations

import logging
import logging.config

from flask import Flask

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(app: Flask) -> logging.Logger:
    """Configure console logging at LOG_LEVEL and return the package logger."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                },
            },
            "loggers": {
                "trustcota": {
                    "handlers": ["console"],
                    "level": level,
                    "propagate": False,
                },
            },
        }
    )
    return logging.getLogger("trustcota")
