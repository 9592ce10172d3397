"""Central logging configuration for the assessflow CLI.

Applies a root stderr handler so module loggers emit without per-module
setup, and avoids duplicate handlers when called more than once.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stderr",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def configure_logging(level: str = "INFO") -> None:
    """Configure application-wide logging once.

    If the root logger already has handlers, only its level is updated.
    """
    level = level.upper()
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    dictConfig(_dict_config(level))
