"""
Structured logging for jobqueue.

Wraps the standard logging module with context-aware helpers and a few
counters describing enqueue activity.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s'


def _handler(handler: logging.Handler, level: str, fmt: str) -> logging.Handler:
    handler.setLevel(getattr(logging, level))
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


class StructuredLogger:
    """
    Logger with console and optional file output.
    Tracks enqueue counters for monitoring producers.
    """

    def __init__(
        self,
        name: str = "jobqueue",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files; no file output when None
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)

        self.metrics = {
            "jobs_enqueued": 0,
            "batches_submitted": 0,
            "validation_failures": 0,
            "io_failures": 0,
            "errors_by_type": {},
            "jobs_by_queue": {},
        }

        self.configure(level=level, log_dir=log_dir, enable_console=enable_console)

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_console: bool = True,
    ):
        """Replace the handlers and level; counters are kept."""
        self.logger.setLevel(getattr(logging, level.upper()))
        self.close()

        if enable_console:
            self.logger.addHandler(
                _handler(logging.StreamHandler(sys.stdout), level.upper(), CONSOLE_FORMAT)
            )
        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"jobqueue_{datetime.now().strftime('%Y%m%d')}.log"
            # the file always gets everything
            self.logger.addHandler(
                _handler(logging.FileHandler(log_file, encoding='utf-8'), "DEBUG", FILE_FORMAT)
            )

    def close(self):
        """Detach and close every handler."""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    def log(self, level: int, message: str, **context):
        """Log ``message`` with keyword context appended as JSON."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    def debug(self, message: str, **context):
        self.log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self.log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self.log(logging.WARNING, message, **context)

    def error(self, message: str, **context):
        self.log(logging.ERROR, message, **context)

    def critical(self, message: str, **context):
        self.log(logging.CRITICAL, message, **context)

    # Counters

    def record_enqueued(self, queue: str, count: int = 1):
        """Count jobs written to a queue."""
        self.metrics["jobs_enqueued"] += count
        by_queue = self.metrics["jobs_by_queue"]
        by_queue[queue] = by_queue.get(queue, 0) + count

    def record_batch(self):
        """Count one submitted multi-row insert."""
        self.metrics["batches_submitted"] += 1

    def record_validation_failure(self, error_type: str):
        self.metrics["validation_failures"] += 1
        self._count_error(error_type)

    def record_io_failure(self, error_type: str):
        self.metrics["io_failures"] += 1
        self._count_error(error_type)

    def _count_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return a snapshot of the counters."""
        snapshot = dict(self.metrics)
        snapshot["errors_by_type"] = dict(self.metrics["errors_by_type"])
        snapshot["jobs_by_queue"] = dict(self.metrics["jobs_by_queue"])
        return snapshot

    def log_metrics_summary(self):
        """Log a summary of current counters."""
        metrics = self.get_metrics()

        self.info("=== Enqueue Metrics ===")
        self.info(f"Jobs enqueued: {metrics['jobs_enqueued']}")
        self.info(f"Batches submitted: {metrics['batches_submitted']}")
        self.info(
            f"Failures: {metrics['validation_failures']} validation, "
            f"{metrics['io_failures']} database"
        )

        if metrics["jobs_by_queue"]:
            self.info("Jobs by queue:")
            for queue, count in metrics["jobs_by_queue"].items():
                self.info(f"  {queue or '(default)'}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "jobqueue", level: str = "INFO", **kwargs) -> StructuredLogger:
    """
    Return the process-wide logger, creating it on first use.

    ``kwargs`` (log_dir, enable_console) only apply on creation.
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)
    return _global_logger


def configure_logger(level: str = "INFO", log_dir: Optional[Path] = None) -> StructuredLogger:
    """Reconfigure the global logger in place, e.g. from Settings."""
    logger = get_logger()
    logger.configure(level=level, log_dir=log_dir)
    return logger


def reset_logger():
    """Drop the global logger and its handlers (tests)."""
    global _global_logger
    if _global_logger is not None:
        _global_logger.close()
    _global_logger = None
