"""
Logging utilities for web interface components.

This module provides specialized logging for:
- FastAPI request handling
- WebSocket connection management
- Channel message traffic
"""

from ..utils.logging import LogContext, get_logger

# Web component loggers
api_logger = get_logger(__name__ + ".api", LogContext.WEB)
websocket_logger = get_logger(__name__ + ".websocket", LogContext.WEB)
channel_logger = get_logger(__name__ + ".channel", LogContext.CHANNEL)


def log_api_request(method: str, path: str, client_ip: str) -> None:
    """Log incoming API requests."""
    api_logger.info(
        "API request received",
        method=method,
        path=path,
        client_ip=client_ip,
    )


def log_websocket_connection(
    client_ip: str,
    action: str,  # connect, disconnect
    connection_id: str,
    reason: str | None = None,
) -> None:
    """Log WebSocket connection events."""
    websocket_logger.info(
        f"WebSocket {action}",
        action=action,
        client_ip=client_ip,
        connection_id=connection_id,
        reason=reason,
    )


def log_websocket_message(
    connection_id: str,
    message_type: str,
    direction: str,  # inbound, outbound
    message_size: int,
) -> None:
    """Log WebSocket message traffic."""
    websocket_logger.debug(
        f"WebSocket message {direction}",
        connection_id=connection_id,
        message_type=message_type,
        direction=direction,
        message_size=message_size,
    )


def log_real_time_event(event_type: str, target_connections: int, payload_size: int) -> None:
    """Log real-time event broadcasting."""
    websocket_logger.debug(
        "Real-time event broadcast",
        event_type=event_type,
        target_connections=target_connections,
        payload_size=payload_size,
    )


def log_dropped_message(connection_id: str, message_type: str, reason: str, **details: object) -> None:
    """Log an inbound message that was ignored."""
    channel_logger.warning(
        f"Message dropped - {message_type} ({reason})",
        connection_id=connection_id,
        message_type=message_type,
        reason=reason,
        **details,
    )
