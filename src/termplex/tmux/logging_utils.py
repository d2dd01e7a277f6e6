"""Logging utilities for tmux operations."""

from typing import Any

from ..utils.logging import LogContext, get_logger

# Create tmux logger
tmux_logger = get_logger("termplex.tmux", LogContext.TMUX)


def log_tmux_query(command: str, status: str, context: dict[str, Any] | None = None) -> None:
    """Log a tmux query outcome."""
    message = f"tmux {command} {status}"
    if context:
        message += f" - {context}"

    if status == "error":
        tmux_logger.warning(message, command=command)
    else:
        tmux_logger.debug(message, command=command)


def log_session_attach(session_name: str, session_id: str, window_index: int | None = None) -> None:
    """Log a terminal session attaching to a tmux session."""
    message = f"Session attach prepared - {session_name}"
    if window_index:
        message += f" (window: {window_index})"
    tmux_logger.info(message, tmux_session=session_name, session_id=session_id)


def log_session_detach(session_name: str, session_id: str) -> None:
    """Log a terminal session detaching from a tmux session."""
    tmux_logger.info(
        f"Session detached - {session_name}", tmux_session=session_name, session_id=session_id
    )


def log_attachment_changes(changes: dict[str, str]) -> None:
    """Log attached-session annotation changes."""
    if changes:
        tmux_logger.info(f"Attachment changes detected - count: {len(changes)}", changes=changes)
    else:
        tmux_logger.debug("No attachment changes")


def log_session_list(sessions: list[Any], changed: bool) -> None:
    """Log session listing."""
    message = f"Sessions listed - count: {len(sessions)}"
    if changed:
        tmux_logger.info(message + " (changed)")
    else:
        tmux_logger.debug(message)


def log_backoff(schedule: str, failures: int, interval: float) -> None:
    """Log poll back-off after repeated failures."""
    tmux_logger.warning(
        f"tmux {schedule} polling backing off - failures: {failures}, interval: {interval:.1f}s",
        schedule=schedule,
        failures=failures,
        interval=interval,
    )
