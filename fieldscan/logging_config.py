"""Logging bootstrap for the controller service."""
from __future__ import annotations

from logging.config import dictConfig
from typing import Any, Dict

from .config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party HTTP loggers, levelled separately from the app
HTTP_LOGGERS = ("httpx", "httpcore")


def build_logging_config(settings: Settings) -> Dict[str, Any]:
    """dictConfig mapping for the device: console, plus a midnight-rotated file when enabled."""

    level = settings.log_level.upper()
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {"class": "logging.StreamHandler", "formatter": "default", "level": level},
    }
    if settings.log_to_file:
        log_dir = settings.log_directory.expanduser()
        handlers["runtime_file"] = {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "formatter": "default",
            "level": level,
            "filename": str(log_dir / settings.log_file_name),
            "when": "midnight",
            "backupCount": max(settings.log_retention_days, 1),
            "utc": True,
            "delay": True,
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": handlers,
        "loggers": {name: {"level": settings.http_log_level.upper()} for name in HTTP_LOGGERS},
        "root": {"level": level, "handlers": list(handlers)},
    }


def configure_logging(settings: Settings) -> None:
    if settings.log_to_file:
        settings.log_directory.expanduser().mkdir(parents=True, exist_ok=True)
    dictConfig(build_logging_config(settings))


__all__ = ["build_logging_config", "configure_logging"]
