"""
Centralized logging for the fxevo backtesting engine.

Console output is plain text. The rotating log file holds one JSON object per
line so that long evolutionary runs can be filtered by run, generation or
simulated date afterwards.
"""

import functools
import json
import logging
import logging.handlers
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class CorrelationFilter(logging.Filter):
    """Stamps every record with the id of the simulation run it belongs to."""

    def __init__(self):
        super().__init__()
        self.correlation_id = None

    def filter(self, record):
        if self.correlation_id:
            record.correlation_id = self.correlation_id
        return True

    def set_correlation_id(self, correlation_id: Optional[str]):
        self.correlation_id = correlation_id


class StructuredFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, 'correlation_id'):
            log_entry["correlation_id"] = record.correlation_id

        # simulation context (generation, date, investor id, ...)
        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up logging for a simulation or crucible run.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file, defaults to logs/fxevo.log
        enable_console: Whether to log to stderr
        enable_file: Whether to log JSON lines to a rotating file
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of rotated log files to keep

    Returns:
        Configured root logger
    """
    if log_file is None:
        log_file = Path("logs") / "fxevo.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()
    for existing in list(root_logger.filters):
        if isinstance(existing, CorrelationFilter):
            root_logger.removeFilter(existing)

    correlation_filter = CorrelationFilter()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        console_handler.addFilter(correlation_filter)
        root_logger.addHandler(console_handler)

    if enable_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count
        )
        file_handler.setFormatter(StructuredFormatter())
        file_handler.addFilter(correlation_filter)
        root_logger.addHandler(file_handler)

    # kept on the root logger so set_correlation_id can find it
    root_logger.addFilter(correlation_filter)

    logger = get_logger(__name__)
    logger.info("fxevo logging initialized", extra={
        "extra_fields": {
            "log_level": level,
            "log_file": str(log_file) if enable_file else None,
            "enable_console": enable_console,
            "enable_file": enable_file
        }
    })

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]):
    """
    Set the correlation id attached to every subsequent record.

    Args:
        correlation_id: Identifier of the current run, or None to clear it
    """
    root_logger = logging.getLogger()
    for filter_obj in root_logger.filters:
        if isinstance(filter_obj, CorrelationFilter):
            filter_obj.set_correlation_id(correlation_id)
            break


def generate_correlation_id() -> str:
    """Generate a new run id."""
    return str(uuid.uuid4())


def log_with_correlation(func):
    """
    Decorator that runs ``func`` under a fresh correlation id.

    Used on the CLI commands so every record of one invocation can be
    grouped together.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)

        logger = get_logger(func.__module__)
        logger.debug(f"Starting {func.__name__}", extra={
            "extra_fields": {
                "correlation_id": correlation_id,
                "function": func.__name__,
            }
        })

        try:
            result = func(*args, **kwargs)
            logger.debug(f"Completed {func.__name__}", extra={
                "extra_fields": {
                    "correlation_id": correlation_id,
                    "function": func.__name__,
                    "result_type": type(result).__name__
                }
            })
            return result
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {str(e)}", extra={
                "extra_fields": {
                    "correlation_id": correlation_id,
                    "function": func.__name__,
                    "error_type": type(e).__name__
                }
            }, exc_info=True)
            raise
        finally:
            set_correlation_id(None)

    return wrapper
