"""
Logging Infrastructure for Conversion Pattern Mining
Provides structured logging with multiple handlers and formatters.
"""

import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .config import LoggingConfig, get_config


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_fields"):
            log_obj.update(record.extra_fields)

        return json.dumps(log_obj, default=str)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that adds context to all log messages."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.setdefault("extra", {})
        extra["extra_fields"] = {**self.extra, **extra.get("extra_fields", {})}
        return msg, kwargs

    def with_context(self, **context) -> "ContextLogger":
        """Create a new logger with additional context."""
        return ContextLogger(self.logger, {**self.extra, **context})


class LoggerFactory:
    """Factory for creating configured loggers."""

    _initialized: bool = False
    _loggers: Dict[str, ContextLogger] = {}

    @classmethod
    def setup(cls, config: Optional[LoggingConfig] = None) -> None:
        """Set up the logging infrastructure."""
        if cls._initialized:
            return

        if config is None:
            config = get_config().logging

        level = getattr(logging, config.level.upper())
        formatter = JSONFormatter() if config.json_format else logging.Formatter(config.format)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if config.file_path:
            log_path = Path(config.file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                config.file_path, maxBytes=config.max_bytes, backupCount=config.backup_count
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str, **context) -> ContextLogger:
        """Get or create a logger with the given name."""
        if not cls._initialized:
            cls.setup()

        if name not in cls._loggers:
            cls._loggers[name] = ContextLogger(logging.getLogger(name), context)

        return cls._loggers[name]

    @classmethod
    def reset(cls) -> None:
        """Reset the logger factory."""
        cls._initialized = False
        cls._loggers.clear()


def get_logger(name: str, **context) -> ContextLogger:
    """Convenience function to get a logger."""
    return LoggerFactory.get_logger(name, **context)


class LogMetrics:
    """Utility class for logging mining runs and progress."""

    def __init__(self, logger: ContextLogger):
        self.logger = logger

    def log_run_started(self, analysis_type: str, users: int, candidates: int, combinations: int) -> None:
        """Log the start of the combination search."""
        self.logger.info(
            f"Testing {combinations} 2-way combinations from {candidates} candidates "
            f"({users} users) for '{analysis_type}'",
            extra={
                "extra_fields": {
                    "event": "run_started",
                    "analysis_type": analysis_type,
                    "users": users,
                    "candidates": candidates,
                    "combinations": combinations,
                }
            },
        )

    def log_progress(self, analysis_type: str, processed: int, total: int, kept: int) -> None:
        """Log search progress."""
        self.logger.info(
            f"Progress: {processed}/{total} combinations evaluated ({kept} kept)",
            extra={
                "extra_fields": {
                    "event": "progress",
                    "analysis_type": analysis_type,
                    "processed": processed,
                    "total": total,
                    "kept": kept,
                }
            },
        )

    def log_run_completed(
        self, analysis_type: str, status: str, evaluated: int, stored: int, duration_seconds: float
    ) -> None:
        """Log the end of an analysis run."""
        self.logger.info(
            f"Completed '{analysis_type}' analysis ({status}): "
            f"{evaluated} evaluated, {stored} stored in {duration_seconds:.2f}s",
            extra={
                "extra_fields": {
                    "event": "run_completed",
                    "analysis_type": analysis_type,
                    "status": status,
                    "evaluated": evaluated,
                    "stored": stored,
                    "duration_seconds": duration_seconds,
                }
            },
        )

    def log_error(
        self, error_type: str, error_message: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log an error event."""
        self.logger.error(
            f"{error_type}: {error_message}",
            extra={
                "extra_fields": {
                    "event": "error",
                    "error_type": error_type,
                    "error_message": error_message,
                    "context": context or {},
                }
            },
        )
