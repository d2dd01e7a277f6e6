"""
WebSocket connection manager for terminal channels.

Handles connection lifecycle, tmux notification fan-out and connection stats.
"""

import asyncio
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Any

from fastapi import WebSocket

from ...protocol import ServerMessage, TmuxSessionRecord
from ..channel import ChannelMultiplexer, TerminalServices
from ..logging_utils import log_real_time_event, log_websocket_connection


class ConnectionRefusedError(Exception):
    """Raised when a WebSocket connection is refused due to server constraints."""

    pass


@dataclass
class WebSocketConfig:
    """Configuration for WebSocket connections."""

    max_connections: int = 100

    @classmethod
    def from_environment(cls) -> "WebSocketConfig":
        """Create configuration from environment variables."""
        return cls(
            max_connections=int(os.getenv("TERMPLEX_MAX_CONNECTIONS", "100")),
        )


class ConnectionManager:
    """
    Manages terminal channels, one per WebSocket connection.

    Features:
    - Connection lifecycle management
    - Attachment updates routed to the channel owning each session
    - tmux session list broadcast to every channel
    """

    def __init__(self, config: WebSocketConfig | None = None) -> None:
        self.config = config or WebSocketConfig.from_environment()

        # Thread safety lock for connection management
        self._connection_lock = RLock()

        # Active channels by connection ID
        self.connections: dict[str, ChannelMultiplexer] = {}

        # Connection stats
        self.total_connections = 0
        self.started_at = datetime.now()

    async def connect(
        self, websocket: WebSocket, client_ip: str, services: TerminalServices
    ) -> ChannelMultiplexer:
        """
        Accept a new WebSocket connection.

        Args:
            websocket: The WebSocket connection
            client_ip: Client IP address
            services: Shared terminal services

        Returns:
            The channel for the new connection

        Raises:
            ConnectionRefusedError: If server is at capacity
        """
        with self._connection_lock:
            at_capacity = len(self.connections) >= self.config.max_connections

        if at_capacity:
            await websocket.close(code=1008, reason="Server at capacity")
            raise ConnectionRefusedError(
                f"Maximum connections ({self.config.max_connections}) exceeded"
            )

        await websocket.accept()

        connection_id = str(uuid.uuid4())
        channel = ChannelMultiplexer(websocket, connection_id, services, client_ip)

        with self._connection_lock:
            self.connections[connection_id] = channel
            self.total_connections += 1

        log_websocket_connection(
            client_ip=client_ip,
            action="connect",
            connection_id=connection_id,
        )
        return channel

    async def disconnect(
        self, connection_id: str, reason: str = "client_disconnect"
    ) -> None:
        """
        Remove a connection and tear down every session it owns.

        Args:
            connection_id: ID of the connection to remove
            reason: Reason for disconnection
        """
        with self._connection_lock:
            channel = self.connections.pop(connection_id, None)
        if channel is None:
            return

        await channel.shutdown()

        try:
            await channel.websocket.close()
        except (RuntimeError, ConnectionError, OSError):
            # Connection might already be closed or in invalid state
            pass

        log_websocket_connection(
            client_ip=channel.client_ip,
            action="disconnect",
            connection_id=connection_id,
            reason=reason,
        )

    async def cleanup(self) -> None:
        """Close all connections on shutdown."""
        for connection_id in list(self.connections):
            await self.disconnect(connection_id, "server_shutdown")

    def find_owner(self, session_id: str) -> ChannelMultiplexer | None:
        with self._connection_lock:
            for channel in self.connections.values():
                if channel.owns(session_id):
                    return channel
        return None

    async def close_session(self, session_id: str) -> bool:
        """Close a session through the channel that owns it."""
        channel = self.find_owner(session_id)
        if channel is None:
            return False
        return await channel.close_session(session_id)

    async def publish_tmux_status(self, updates: dict[str, str]) -> int:
        """
        Send attachment changes to the channels owning the affected sessions.

        Returns:
            Number of channels that received an update
        """
        with self._connection_lock:
            channels = list(self.connections.values())

        sends = []
        for channel in channels:
            owned = {sid: name for sid, name in updates.items() if channel.owns(sid)}
            if owned:
                sends.append(channel.send(ServerMessage.tmux_status(owned)))

        results = await asyncio.gather(*sends) if sends else []
        log_real_time_event(
            event_type="tmux_status",
            target_connections=len(sends),
            payload_size=len(updates),
        )
        return sum(1 for result in results if result)

    async def broadcast_tmux_sessions(self, sessions: list[TmuxSessionRecord]) -> int:
        """
        Broadcast the tmux session list to every channel.

        Returns:
            Number of channels that received the message
        """
        message = ServerMessage.tmux_sessions_list(sessions)
        with self._connection_lock:
            channels = list(self.connections.values())

        results = (
            await asyncio.gather(*(channel.send(message) for channel in channels))
            if channels
            else []
        )
        log_real_time_event(
            event_type="tmux_sessions",
            target_connections=len(channels),
            payload_size=len(message.to_json()),
        )
        return sum(1 for result in results if result)

    def get_connection_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        with self._connection_lock:
            channels = list(self.connections.values())

        return {
            "active_connections": len(channels),
            "total_connections": self.total_connections,
            "active_sessions": sum(len(c.session_ids) for c in channels),
            "messages_sent": sum(c.messages_sent for c in channels),
            "messages_received": sum(c.messages_received for c in channels),
        }
