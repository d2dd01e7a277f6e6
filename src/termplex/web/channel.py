"""
Channel multiplexer: one WebSocket carrying many terminal sessions.

Inbound frames are consumed sequentially and dispatched by message type.
Outbound messages from every session bridge, the tmux monitor and the
working-directory poller share one write lock, so frames never interleave.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from ..config import TermplexConfig
from ..protocol import ClientMessage, MessageType, ServerMessage
from ..terminal import SessionBridge, SessionRegistry, build_shell_launch
from ..tmux.logging_utils import log_session_attach, log_session_detach
from ..utils.logging import (
    InvalidRequestError,
    MessageTooLargeError,
    ProtocolError,
    PtyError,
    SpawnError,
    TermplexException,
)
from ..utils.process import detect_cwd
from .logging_utils import (
    channel_logger,
    log_dropped_message,
    log_websocket_message,
)

if TYPE_CHECKING:
    from ..tmux import TmuxAttachmentManager, TmuxMonitor

Handler = Callable[[ClientMessage], Awaitable[None]]


@dataclass
class TerminalServices:
    """Process-wide services shared by every channel."""

    config: TermplexConfig
    registry: SessionRegistry
    attachments: "TmuxAttachmentManager"
    monitor: "TmuxMonitor | None" = None


class ChannelMultiplexer:
    """Routes messages between one WebSocket and the sessions it owns."""

    def __init__(
        self,
        websocket: WebSocket,
        connection_id: str,
        services: TerminalServices,
        client_ip: str = "unknown",
    ):
        self.websocket = websocket
        self.connection_id = connection_id
        self.client_ip = client_ip
        self.services = services
        self.is_alive = True
        self.messages_sent = 0
        self.messages_received = 0
        self._write_lock = asyncio.Lock()
        self._bridges: dict[str, SessionBridge] = {}
        self._cwd_task: asyncio.Task[None] | None = None
        self._handlers: dict[str, Handler] = {
            MessageType.CREATE.value: self._handle_create,
            MessageType.INPUT.value: self._handle_input,
            MessageType.RESIZE.value: self._handle_resize,
            MessageType.CLOSE.value: self._handle_close,
            MessageType.DETACH.value: self._handle_detach,
            MessageType.LIST_TMUX_SESSIONS.value: self._handle_list_tmux_sessions,
            MessageType.TMUX_CONFIG.value: self._handle_tmux_config,
        }

    @property
    def config(self) -> TermplexConfig:
        return self.services.config

    @property
    def session_ids(self) -> list[str]:
        return list(self._bridges)

    def owns(self, session_id: str) -> bool:
        return session_id in self._bridges

    async def send(self, message: ServerMessage) -> bool:
        """Write one message; returns False once the socket is unusable."""
        if not self.is_alive:
            return False

        payload = message.to_json()
        async with self._write_lock:
            try:
                await self.websocket.send_text(payload)
            except (WebSocketDisconnect, RuntimeError, ConnectionError, OSError) as e:
                self.is_alive = False
                channel_logger.warning(
                    "Send failed, channel marked dead",
                    connection_id=self.connection_id,
                    message_type=message.type,
                    error=str(e),
                )
                return False

        self.messages_sent += 1
        log_websocket_message(
            connection_id=self.connection_id,
            message_type=message.type,
            direction="outbound",
            message_size=len(payload),
        )
        return True

    async def send_error(self, error: TermplexException, session_id: str | None = None) -> bool:
        return await self.send(ServerMessage.from_error(error, session_id))

    async def run(self) -> None:
        """Consume inbound frames until the peer disconnects.

        Raises:
            WebSocketDisconnect: When the connection closes
        """
        if self._cwd_task is None:
            self._cwd_task = asyncio.create_task(
                self._poll_cwd(), name=f"cwd-{self.connection_id}"
            )

        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            text = message.get("text")
            if text is None and message.get("bytes") is not None:
                text = message["bytes"].decode("utf-8", errors="replace")
            if text is not None:
                await self.handle_frame(text)

    async def handle_frame(self, raw: str) -> None:
        """Parse and dispatch one inbound frame."""
        self.messages_received += 1

        size = len(raw.encode("utf-8", errors="replace"))
        if size > self.config.max_message_size:
            error = MessageTooLargeError(
                f"Message size ({size} bytes) exceeds limit "
                f"({self.config.max_message_size} bytes)"
            )
            log_dropped_message(self.connection_id, "unknown", "too_large", size=size)
            await self.send_error(error)
            return

        try:
            message = ClientMessage.parse(raw)
        except ProtocolError as e:
            log_dropped_message(self.connection_id, "unknown", "invalid", error=e.message)
            await self.send_error(e)
            return

        log_websocket_message(
            connection_id=self.connection_id,
            message_type=message.type,
            direction="inbound",
            message_size=size,
        )
        await self.dispatch(message)

    async def dispatch(self, message: ClientMessage) -> None:
        handler = self._handlers.get(message.type)
        if handler is None:
            log_dropped_message(self.connection_id, message.type, "unknown_type")
            return

        try:
            await handler(message)
        except TermplexException as e:
            channel_logger.warning(
                f"{message.type} failed: {e.message}",
                connection_id=self.connection_id,
                session_id=message.session_id,
                kind=e.kind,
            )
            await self.send_error(e, message.session_id)
        except Exception as e:
            channel_logger.error(
                f"{message.type} handler crashed",
                exception=e,
                connection_id=self.connection_id,
                session_id=message.session_id,
            )
            await self.send_error(
                TermplexException(f"{message.type} failed: {e}"), message.session_id
            )

    async def shutdown(self) -> None:
        """Tear down every session owned by this channel."""
        self.is_alive = False
        if self._cwd_task and not self._cwd_task.done():
            self._cwd_task.cancel()
            try:
                await self._cwd_task
            except asyncio.CancelledError:
                pass
        self._cwd_task = None

        bridges = list(self._bridges.values())
        self._bridges.clear()
        if bridges:
            channel_logger.info(
                "Closing channel sessions",
                connection_id=self.connection_id,
                count=len(bridges),
            )
            results = await asyncio.gather(
                *(bridge.close() for bridge in bridges), return_exceptions=True
            )
            for bridge, result in zip(bridges, results):
                if isinstance(result, Exception):
                    channel_logger.error(
                        "Session teardown failed",
                        exception=result,
                        session_id=bridge.session_id,
                    )

    async def close_session(self, session_id: str, detach: bool = False) -> bool:
        """Close a session owned by this channel; False if not owned."""
        bridge = self._bridges.pop(session_id, None)
        if bridge is None:
            return False
        await bridge.close(detach=detach)
        return True

    def _lookup(self, message: ClientMessage) -> SessionBridge | None:
        if not message.session_id:
            log_dropped_message(self.connection_id, message.type, "missing_session_id")
            return None
        bridge = self._bridges.get(message.session_id)
        if bridge is None:
            log_dropped_message(
                self.connection_id,
                message.type,
                "unknown_session",
                session_id=message.session_id,
            )
        return bridge

    def _forget(self, session_id: str) -> None:
        self._bridges.pop(session_id, None)

    async def _handle_create(self, message: ClientMessage) -> None:
        if message.tmux_session_name:
            launch = await self.services.attachments.prepare(
                message.tmux_session_name, message.tmux_window_index
            )
        else:
            launch = build_shell_launch(
                self.config.resolve_shell(),
                login=self.config.login_shell,
                cwd=message.cwd,
            )

        session = self.services.registry.create(launch)
        bridge = SessionBridge(
            session,
            self.services.registry,
            self.send,
            batch_interval=self.config.output_batch_ms / 1000,
            exit_grace_period=self.config.terminate_grace_period,
            on_closed=self._forget,
        )
        self._bridges[session.id] = bridge
        bridge.start()

        if session.tmux:
            log_session_attach(
                session.tmux.session_name, session.id, session.tmux.window_index
            )

        await self.send(
            ServerMessage.session_created(
                session_id=session.id,
                name=session.name,
                shell_type=session.shell_type,
                cwd=session.cwd,
                tmux_session_name=session.tmux.session_name if session.tmux else None,
                tmux_window_index=session.tmux.window_index if session.tmux else None,
            )
        )

    async def _handle_input(self, message: ClientMessage) -> None:
        bridge = self._lookup(message)
        if bridge is None or not message.data:
            return
        bridge.feed(message.data.encode("utf-8", errors="replace"))

    async def _handle_resize(self, message: ClientMessage) -> None:
        bridge = self._lookup(message)
        if bridge is None:
            return
        if message.rows is None or message.cols is None:
            raise InvalidRequestError("resize requires rows and cols")

        try:
            await self.services.registry.resize(bridge.session_id, message.rows, message.cols)
        except (SpawnError, PtyError) as e:
            if bridge.session.is_running:
                raise
            # The process never started; the session is unusable
            await self.send_error(e, bridge.session_id)
            await self.close_session(bridge.session_id)

    async def _handle_close(self, message: ClientMessage) -> None:
        if not message.session_id:
            log_dropped_message(self.connection_id, message.type, "missing_session_id")
            return
        if not await self.close_session(message.session_id):
            channel_logger.debug(
                "Close for unknown or finished session",
                connection_id=self.connection_id,
                session_id=message.session_id,
            )

    async def _handle_detach(self, message: ClientMessage) -> None:
        bridge = self._lookup(message)
        if bridge is None:
            return
        tmux = bridge.session.tmux
        if tmux is None:
            raise InvalidRequestError(
                "detach is only valid for tmux attach sessions",
                {"session_id": bridge.session_id},
            )
        await self.close_session(bridge.session_id, detach=True)
        log_session_detach(tmux.session_name, bridge.session_id)

    async def _handle_list_tmux_sessions(self, message: ClientMessage) -> None:
        monitor = self.services.monitor
        sessions = monitor.get_last_sessions() if monitor else []
        await self.send(ServerMessage.tmux_sessions_list(sessions))

    async def _handle_tmux_config(self, message: ClientMessage) -> None:
        monitor = self.services.monitor
        if monitor is None or message.interval is None or message.interval <= 0:
            return
        monitor.update_interval(message.interval / 1000)

    async def _poll_cwd(self) -> None:
        interval = self.config.cwd_poll_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self._refresh_cwds()
            except Exception as e:
                channel_logger.error(
                    "Error in working directory poll",
                    exception=e,
                    connection_id=self.connection_id,
                )

    async def _refresh_cwds(self) -> None:
        for bridge in list(self._bridges.values()):
            session = bridge.session
            if not session.is_running or session.pid is None:
                continue
            cwd = await asyncio.to_thread(detect_cwd, session.pid)
            if cwd and cwd != session.cwd:
                session.cwd = cwd
                await self.send(ServerMessage.cwd_update(session.id, cwd))
