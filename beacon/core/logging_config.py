"""Logging configuration shared by the main and monitoring applications."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path

from beacon.config import Settings


def configure_logging(settings: Settings, log_name: str = "app") -> None:
    """Configure console and rotating file logging.

    Console output uses the standard formatter and the file handler rotates at
    midnight keeping five backups. Each application writes to its own file
    (``logs/<log_name>.log``) so the two services can share a checkout.
    Uvicorn loggers are aligned with the application formatters.
    """

    log_level = settings.log_level.upper()
    file_log_level = "DEBUG" if settings.debug else log_level

    project_root = Path(__file__).resolve().parent.parent
    log_dir = project_root / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{log_name}.log"

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] %(levelname)s [%(name)s:%(lineno)d] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "access": {
                "format": "[%(asctime)s] %(levelname)s [uvicorn.access] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
            },
            "file": {
                "class": "logging.handlers.TimedRotatingFileHandler",
                "level": file_log_level,
                "formatter": "standard",
                "filename": str(log_file),
                "when": "midnight",
                "interval": 1,
                "backupCount": 5,
                "utc": True,
            },
            "uvicorn_access": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "access",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console", "file"],
                "level": log_level,
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "handlers": ["console", "file"],
                "level": "WARNING",
                "propagate": False,
            },
            "aio_pika": {
                "handlers": ["console", "file"],
                "level": "WARNING",
                "propagate": False,
            },
            "httpx": {
                "handlers": ["console", "file"],
                "level": "WARNING",
                "propagate": False,
            },
            "uvicorn": {
                "handlers": ["console", "file"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["console", "file"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["uvicorn_access", "file"],
                "level": log_level,
                "propagate": False,
            },
        },
    }

    dictConfig(logging_config)
    logging.captureWarnings(True)
