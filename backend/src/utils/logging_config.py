"""
Structured logging configuration for the notification core.

Provides JSON-formatted logging with file rotation for production environments
and human-readable console logging for development.

Loggers:
- services: Gatekeeper decisions, preference and token lookups
- scheduler: Scheduled job runs and per-processor summaries
- push: Expo gateway calls, receipts, token deactivation
- db: Database operations
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Dict, Optional
import json
from datetime import datetime


# Attributes present on every LogRecord; anything else came in via extra={...}
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs as JSON for structured logging.

    Each log record includes:
    - timestamp: ISO 8601 format
    - level: Log level (INFO, ERROR, etc.)
    - logger: Logger name (services, scheduler, push, db)
    - message: Log message
    - module, function, line: Call site
    - Additional fields: exception info, extra fields
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed as logger.info("msg", extra={...})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter for console output in development.

    Format: [TIMESTAMP] LEVEL - LOGGER - MESSAGE
    Example: [2025-12-29 10:30:45] INFO - scheduler - Game reminders processed
    """

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def _get_log_level() -> int:
    """
    Get log level from environment variable.

    Environment Variables:
        NOTIFY_LOG_LEVEL: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                          Defaults to INFO
    """
    level_str = os.environ.get("NOTIFY_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def _get_log_dir() -> Path:
    """
    Get log directory path from environment variable or use default.

    Environment Variables:
        NOTIFY_LOG_DIR: Custom log directory path
                        Defaults to ./logs (relative to CWD)
    """
    log_dir = Path(os.environ.get("NOTIFY_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _is_production() -> bool:
    """
    Check if running in production environment.

    Environment Variables:
        NOTIFY_ENV: Environment name (production, development, test)
                    Defaults to development
    """
    return os.environ.get("NOTIFY_ENV", "development").lower() == "production"


def configure_logging() -> Dict[str, logging.Logger]:
    """
    Configure structured logging for the notification core.

    Behavior:
    - Production (NOTIFY_ENV=production):
      * JSON-formatted logs to files with rotation
      * Separate files per logger: services.log, scheduler.log, push.log, db.log
      * File rotation: 10MB max size, 5 backup files

    - Development (default):
      * Human-readable console output
      * No file logging

    Returns:
        Dictionary mapping logger names to configured Logger instances

    Example:
        >>> loggers = configure_logging()
        >>> loggers["push"].info("Batch sent", extra={"messages": 100})
    """
    log_level = _get_log_level()
    is_prod = _is_production()
    log_dir = _get_log_dir() if is_prod else None

    logger_names = ["services", "scheduler", "push", "db"]
    loggers = {}

    for logger_name in logger_names:
        logger = logging.getLogger(f"notify.{logger_name}")
        logger.setLevel(log_level)
        logger.propagate = False

        logger.handlers.clear()

        if is_prod:
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / f"{logger_name}.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)
        else:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(log_level)
            console_handler.setFormatter(ConsoleFormatter())
            logger.addHandler(console_handler)

        loggers[logger_name] = logger

    return loggers


# Singleton logger instances
_loggers: Optional[Dict[str, logging.Logger]] = None


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger by name.

    Args:
        name: Logger name (services, scheduler, push, db)

    Returns:
        Configured Logger instance

    Raises:
        ValueError: If logger name is not recognized
    """
    global _loggers

    if _loggers is None:
        _loggers = configure_logging()

    if name not in _loggers:
        raise ValueError(
            f"Unknown logger name: {name}. "
            f"Valid names: {', '.join(_loggers.keys())}"
        )

    return _loggers[name]


def init_logging() -> Dict[str, logging.Logger]:
    """
    Initialize logging configuration (called by CLI entry points on startup).

    Returns:
        Dictionary of configured loggers
    """
    global _loggers
    _loggers = configure_logging()
    return _loggers


def mask_token(token: Optional[str]) -> str:
    """Truncate a device token for log output."""
    if not token:
        return "?"
    return token[:20] + "..." if len(token) > 20 else token
