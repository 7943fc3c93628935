"""
Logging configuration for inventoryd.

Provides structured JSON logging for the report pipeline, plus a small event
logger that gives each pipeline milestone a stable name and structured fields.
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from typing import Optional

# Context variable tying log lines to one refresh cycle or one HTTP request
correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for journald, Vector or any other
    line-oriented log shipper.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class EventLogger:
    """
    Logger for named pipeline events.

    Each method maps to one milestone of the collect -> persist -> cache flow
    or of identity loading, so log queries can filter on ``event_type``.
    """

    def __init__(self, name: str = "inventoryd.events"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            **kwargs
        }
        correlation_id = correlation_id_var.get()
        if correlation_id:
            extra["correlation_id"] = correlation_id

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def probe_failed(self, section: str, error: BaseException) -> None:
        """A section probe failed; its zero-value default is used instead."""
        self._log(
            logging.WARNING,
            "PROBE_FAILED",
            section=section,
            error=str(error) or type(error).__name__,
            message=f"failed to collect {section} info, using defaults"
        )

    def report_collected(self, hostname: str, failed_sections: list) -> None:
        self._log(
            logging.INFO,
            "REPORT_COLLECTED",
            hostname=hostname,
            failed_sections=failed_sections,
            message=f"report collected for {hostname}"
        )

    def report_persisted(self, checksum: str, path: str) -> None:
        self._log(
            logging.INFO,
            "REPORT_PERSISTED",
            checksum=checksum,
            path=path,
            message="report written to disk"
        )

    def cache_loaded(self, checksum: str, age_seconds: int) -> None:
        self._log(
            logging.INFO,
            "CACHE_LOADED",
            checksum=checksum,
            age_seconds=age_seconds,
            message="loaded report from disk cache"
        )

    def cache_load_skipped(self, path: str) -> None:
        self._log(
            logging.INFO,
            "CACHE_LOAD_SKIPPED",
            path=path,
            message="no cached report file found, cache starts empty"
        )

    def cache_load_failed(self, path: str, error: BaseException) -> None:
        self._log(
            logging.WARNING,
            "CACHE_LOAD_FAILED",
            path=path,
            error=str(error),
            message="failed to load report from disk, will re-collect"
        )

    def refresh_completed(self, trigger: str, checksum: str) -> None:
        self._log(
            logging.INFO,
            "REFRESH_COMPLETED",
            trigger=trigger,
            checksum=checksum,
            message=f"{trigger} report refresh completed"
        )

    def refresh_failed(self, trigger: str, error: BaseException) -> None:
        self._log(
            logging.WARNING,
            "REFRESH_FAILED",
            trigger=trigger,
            error=str(error),
            message=f"{trigger} report refresh failed"
        )

    def overlay_applied(self, path: str) -> None:
        self._log(
            logging.INFO,
            "OVERLAY_APPLIED",
            path=path,
            message="applying identity overlay"
        )

    def overlay_skipped(self, path: str, reason: str) -> None:
        self._log(
            logging.WARNING,
            "OVERLAY_SKIPPED",
            path=path,
            reason=reason,
            message="skipping invalid overlay file"
        )

    def identity_loaded(self, path: str, overlays: int) -> None:
        self._log(
            logging.INFO,
            "IDENTITY_LOADED",
            path=path,
            overlays=overlays,
            message="loaded node identity with overlays"
        )

    def identity_reload_failed(self, path: str, error: BaseException) -> None:
        self._log(
            logging.ERROR,
            "IDENTITY_RELOAD_FAILED",
            path=path,
            error=str(error),
            message="failed to reload node identity, keeping previous value"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the daemon.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended when running as a service)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def get_correlation_id() -> str:
    """Get the current correlation ID."""
    return correlation_id_var.get()


# Global event logger instance
event_log = EventLogger()
