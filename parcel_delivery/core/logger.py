"""
Centralized logging configuration for the delivery services.

Structured logging with correlation IDs on top of the standard logging module:
- console output with colored levels for development
- JSON output for production and for log files
- a metadata dict on every call instead of free-form string formatting
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from parcel_delivery.core.config import config
from parcel_delivery.utils.correlation_id import get_correlation_id

LOGGER_NAME = "parcel_delivery"

# LogRecord attributes that are not part of the structured payload
_RESERVED_RECORD_KEYS = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName",
}


class StructuredLogger:
    """
    Logger with structured entries, correlation IDs and per-call metadata.
    """

    def __init__(self, service_name: Optional[str] = None, environment: Optional[str] = None):
        self.service_name = service_name or config.service_name
        self.environment = environment or config.environment
        self.level = config.log_level.upper()
        self.log_format = config.log_format
        self._logger = logging.getLogger(LOGGER_NAME)
        self._setup_logging()

    def _setup_logging(self):
        """Configure Python logging with handlers"""
        self._logger.handlers.clear()
        self._logger.setLevel(getattr(logging, self.level, logging.INFO))

        if config.log_to_console:
            console_handler = logging.StreamHandler(sys.stdout)
            if self.log_format == "json":
                console_handler.setFormatter(JSONFormatter(self.service_name))
            else:
                console_handler.setFormatter(ConsoleFormatter())
            self._logger.addHandler(console_handler)

        if config.log_to_file:
            os.makedirs(os.path.dirname(config.log_file_path) or ".", exist_ok=True)
            file_handler = logging.FileHandler(config.log_file_path)
            file_handler.setFormatter(JSONFormatter(self.service_name))  # Always JSON for files
            self._logger.addHandler(file_handler)

    def _build_log_entry(
        self,
        level: str,
        message: str,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """Build structured log entry"""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.upper(),
            "service": self.service_name,
            "environment": self.environment,
            "message": message,
            "correlationId": correlation_id or get_correlation_id(),
        }

        if metadata:
            entry["metadata"] = metadata

        entry.update(kwargs)
        return entry

    def _log(
        self,
        level: str,
        message: str,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        log_entry = self._build_log_entry(level, message, correlation_id, metadata, **kwargs)
        log_method = getattr(self._logger, level.lower())

        # 'message' would clash with the LogRecord attribute of the same name
        extra_data = {k: v for k, v in log_entry.items() if k != "message"}
        log_method(message, extra=extra_data)

    def debug(self, message: str, correlation_id: Optional[str] = None,
              metadata: Optional[Dict[str, Any]] = None, **kwargs):
        """Debug level logging"""
        self._log("DEBUG", message, correlation_id, metadata, **kwargs)

    def info(self, message: str, correlation_id: Optional[str] = None,
             metadata: Optional[Dict[str, Any]] = None, **kwargs):
        """Info level logging"""
        self._log("INFO", message, correlation_id, metadata, **kwargs)

    def warning(self, message: str, correlation_id: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None, **kwargs):
        """Warning level logging"""
        self._log("WARNING", message, correlation_id, metadata, **kwargs)

    def error(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        error: Optional[Union[str, Exception]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Error level logging"""
        metadata = dict(metadata or {})
        if error:
            if isinstance(error, Exception):
                metadata["error"] = {"type": type(error).__name__, "message": str(error)}
            else:
                metadata["error"] = {"message": str(error)}

        self._log("ERROR", message, correlation_id, metadata, **kwargs)

    def critical(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        error: Optional[Union[str, Exception]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Critical level logging"""
        metadata = dict(metadata or {})
        if error:
            metadata["error"] = {"type": type(error).__name__, "message": str(error)}

        self._log("CRITICAL", message, correlation_id, metadata, **kwargs)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        line = f"{color}[{timestamp}] {record.levelname}{reset} - {record.getMessage()}"

        metadata = getattr(record, "metadata", None)
        if metadata:
            line = f"{line} {json.dumps(metadata, default=str)}"
        return line


# Create and export the logger instance
logger = StructuredLogger()
