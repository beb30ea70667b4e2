"""Logging setup driven by LoggingSettings."""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import LoggingSettings, get_settings

NOISY_LOGGERS = ("aiohttp", "httpx", "httpcore", "asyncio")


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """
    Configure the root logger.

    Installs a stdout handler and, when enabled, a rotating file handler.
    Existing root handlers are replaced so repeated calls do not duplicate
    output.
    """
    settings = settings or get_settings().logging

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.level.value))
    root_logger.handlers.clear()

    if settings.json_format:
        formatter: logging.Formatter = JsonFormatter(datefmt=settings.date_format)
    else:
        formatter = logging.Formatter(settings.format, datefmt=settings.date_format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.file_enabled:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.file_path,
            maxBytes=settings.file_max_bytes,
            backupCount=settings.file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("solana_swap_gateway")
