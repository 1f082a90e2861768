from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict

LOG_FILE_NAME = "email_notification.log"
LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3
NOISY_LOGGERS = ("googleapiclient.discovery_cache", "googleapiclient.discovery", "google_auth_oauthlib")


def _file_handler(log_path: Path) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "detailed",
        "filename": str(log_path),
        "maxBytes": LOG_FILE_MAX_BYTES,
        "backupCount": LOG_FILE_BACKUPS,
        "encoding": "utf-8",
    }


def _console_handler(level: str) -> Dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "formatter": "brief",
        "level": level.upper(),
    }


def configure_logging(log_dir: Path, level: str = "INFO", console_level: str | None = None) -> Path:
    """Log notification checks and label transitions to the console and a rotating file.

    ``console_level`` lets ``watch`` runs keep the terminal quiet while the file
    keeps the full history. Google client libraries are capped at WARNING.
    """

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "detailed": {"format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"},
                "brief": {"format": "%(levelname)s | %(message)s"},
            },
            "handlers": {
                "notification_file": _file_handler(log_path),
                "console": _console_handler(console_level or level),
            },
            "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
            "root": {"handlers": ["notification_file", "console"], "level": level.upper()},
        }
    )
    logging.getLogger(__name__).debug("Notification log file is %s (level %s)", log_path, level.upper())
    return log_path
