# utils/logging_config.py
"""
Logging configuration: console always, plus an optional size-rotated
log file when LOG_FILE is set.
"""
import logging.config
from typing import Any, Dict

from config import Settings


def get_logging_config(settings: Settings) -> Dict[str, Any]:
     """Build a ``logging.config.dictConfig`` mapping for the settings."""
     level = settings.log_level.upper()
     if not isinstance(logging.getLevelName(level), int):
          level = "INFO"
     handlers = ["console"]
     config = {
          "version": 1,
          "disable_existing_loggers": False,
          "formatters": {
               "verbose": {
                    "format": "{asctime} {levelname} {name}: {message}",
                    "style": "{",
               },
          },
          "handlers": {
               "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "verbose",
               },
          },
          "root": {
               "level": level,
               "handlers": handlers,
          },
     }

     if settings.log_file:
          config["handlers"]["file"] = {
               "class": "logging.handlers.RotatingFileHandler",
               "filename": settings.log_file,
               "maxBytes": settings.log_file_max_bytes,
               "backupCount": settings.log_file_backups,
               "encoding": "utf-8",
               "formatter": "verbose",
          }
          handlers.append("file")

     return config


def configure_logging(settings: Settings) -> None:
     logging.config.dictConfig(get_logging_config(settings))
