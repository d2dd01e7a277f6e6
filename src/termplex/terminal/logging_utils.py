"""Logging utilities for terminal sessions."""

from typing import Any

from ..utils.logging import LogContext, get_logger

# Terminal component loggers
session_logger = get_logger("termplex.terminal.session", LogContext.SESSION)
pty_logger = get_logger("termplex.terminal.pty", LogContext.PTY)
bridge_logger = get_logger("termplex.terminal.bridge", LogContext.BRIDGE)


def log_session_event(session_id: str, event: str, **details: Any) -> None:
    """Log a session lifecycle transition."""
    session_logger.info(f"Session {event} - {session_id}", session_id=session_id, **details)


def log_session_error(session_id: str, operation: str, error: Exception) -> None:
    """Log a failed session operation."""
    session_logger.error(
        f"Session {operation} failed - {session_id}",
        session_id=session_id,
        operation=operation,
        error=str(error),
    )


def log_bridge_exit(session_id: str, reason: str, exit_code: int | None = None) -> None:
    """Log the end of a session bridge."""
    bridge_logger.info(
        f"Bridge finished - {session_id} ({reason})",
        session_id=session_id,
        reason=reason,
        exit_code=exit_code,
    )
