"""
Logging and error handling framework for termplex.

This module provides:
- Structured (JSON) logging configuration
- The termplex exception hierarchy with stable error kinds
- Context-aware logging utilities
"""

import json
import logging
import sys
import traceback
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class LogLevel(str, Enum):
    """Log level enumeration for type safety."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogContext(str, Enum):
    """Log context categories for structured logging."""

    SESSION = "session"
    PTY = "pty"
    BRIDGE = "bridge"
    CHANNEL = "channel"
    TMUX = "tmux"
    WEB = "web"
    CLI = "cli"
    CONFIG = "config"


class TermplexException(Exception):
    """Base exception class for all termplex errors.

    ``kind`` is the stable tag reported to clients in ``error`` messages.
    """

    kind = "internal_error"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.utcnow()


class ConfigurationError(TermplexException):
    """Errors related to configuration and setup."""

    kind = "configuration_error"


class ProtocolError(TermplexException):
    """A client message could not be understood."""

    kind = "invalid_message"


class InvalidRequestError(ProtocolError):
    """A well-formed message asked for something that cannot be done."""

    kind = "invalid_request"


class MessageTooLargeError(ProtocolError):
    """An inbound frame exceeded the configured size limit."""

    kind = "message_too_large"


class SessionError(TermplexException):
    """Errors related to terminal session lifecycle."""

    kind = "session_error"


class SessionNotFoundError(SessionError):
    """No live session carries the requested identifier."""

    kind = "session_not_found"


class PtyError(SessionError):
    """The pseudo-terminal pair could not be allocated or driven."""

    kind = "pty_failed"


class SpawnError(SessionError):
    """The session process could not be started."""

    kind = "spawn_failed"


class TmuxError(TermplexException):
    """Errors related to tmux integration."""

    kind = "tmux_error"


class TmuxUnavailableError(TmuxError):
    """The tmux binary is not installed or not on PATH."""

    kind = "tmux_unavailable"


class TmuxSessionNotFoundError(TmuxError):
    """The named tmux session does not exist."""

    kind = "tmux_session_not_found"


class InvalidTmuxSessionNameError(TmuxError):
    """A tmux session name failed validation."""

    kind = "invalid_tmux_session_name"


class TmuxCommandError(TmuxError):
    """A tmux query exited nonzero, timed out, or could not be run."""

    kind = "tmux_command_failed"


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "context"):
            log_data["context"] = record.context

        if hasattr(record, "session_id"):
            log_data["session_id"] = record.session_id

        # Add all other extra fields from the record
        standard_fields = {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
            "getMessage",
            "context",
            "session_id",
        }

        for key, value in record.__dict__.items():
            if key not in standard_fields and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ContextualLogger:
    """Logger with context management for structured logging."""

    def __init__(self, name: str, context: LogContext):
        self.logger = logging.getLogger(name)
        self.context = context.value

    def _log(
        self,
        level: int,
        message: str,
        extra_context: dict[str, Any] | None = None,
        exc_info: BaseException | None = None,
    ) -> None:
        """Internal logging method with context injection."""
        extra: dict[str, Any] = {
            "context": self.context,
        }

        if extra_context:
            extra.update(extra_context)

        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message with context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message with context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message with context."""
        self._log(logging.WARNING, message, kwargs)

    def error(
        self, message: str, exception: BaseException | None = None, **kwargs: Any
    ) -> None:
        """Log error message with context and optional exception."""
        self._log(logging.ERROR, message, kwargs, exc_info=exception)

    def critical(
        self, message: str, exception: BaseException | None = None, **kwargs: Any
    ) -> None:
        """Log critical message with context and optional exception."""
        self._log(logging.CRITICAL, message, kwargs, exc_info=exception)


def get_logger(name: str, context: LogContext) -> ContextualLogger:
    """Get a contextual logger instance."""
    return ContextualLogger(name, context)


def setup_logging(
    log_level: str | LogLevel = LogLevel.INFO,
    log_file: Path | None = None,
    enable_structured: bool = True,
    enable_console: bool = True,
) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Minimum log level to capture
        log_file: Optional file path for log output
        enable_structured: Use JSON structured logging format
        enable_console: Enable console output
    """
    if isinstance(log_level, LogLevel):
        log_level = log_level.value

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    def _formatter() -> logging.Formatter:
        if enable_structured:
            return StructuredFormatter()
        return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(_formatter())
        handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(_formatter())
        handlers.append(file_handler)

    root_logger = logging.getLogger()

    # Clear existing handlers first
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("libtmux").setLevel(logging.WARNING)
