"""FastAPI web application for termplex."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import TermplexConfig, load_config
from ..terminal import SessionRegistry
from ..terminal.registry import PtyFactory
from ..tmux import TmuxAttachmentManager, TmuxDetector, TmuxMonitor
from ..utils.logging import SessionNotFoundError, TermplexException
from .channel import TerminalServices
from .logging_utils import api_logger, log_api_request
from .websocket.manager import ConnectionManager, WebSocketConfig
from .websocket.router import router as websocket_router


def build_services(
    config: TermplexConfig,
    connection_manager: ConnectionManager,
    detector: TmuxDetector | None = None,
    pty_factory: PtyFactory | None = None,
) -> TerminalServices:
    """Wire the registry, tmux integration and notification callbacks."""
    detector = detector or TmuxDetector(timeout=config.tmux_command_timeout)
    registry = SessionRegistry(
        pty_factory=pty_factory, grace_period=config.terminate_grace_period
    )
    monitor = TmuxMonitor(
        detector,
        registry,
        client_interval=config.tmux_client_poll_interval,
        session_interval=config.tmux_session_poll_interval,
        failure_threshold=config.tmux_failure_threshold,
        max_backoff=config.tmux_max_backoff,
        on_status_change=connection_manager.publish_tmux_status,
        on_sessions_change=connection_manager.broadcast_tmux_sessions,
    )
    attachments = TmuxAttachmentManager(detector, env_prefix=config.tmux_env_prefix)
    return TerminalServices(
        config=config, registry=registry, attachments=attachments, monitor=monitor
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events."""
    # Startup
    api_logger.info("Starting termplex server")
    services: TerminalServices = app.state.services
    if services.monitor is not None:
        services.monitor.start()
    api_logger.info("termplex server started successfully")

    yield

    # Shutdown
    api_logger.info("Shutting down termplex server")
    if services.monitor is not None:
        await services.monitor.stop()
    await app.state.connection_manager.cleanup()
    await services.registry.close_all()
    api_logger.info("termplex server shutdown complete")


def create_app(
    config: TermplexConfig | None = None,
    detector: TmuxDetector | None = None,
    pty_factory: PtyFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or load_config()

    app = FastAPI(
        title="termplex",
        description="Multiplexed browser terminals with tmux integration",
        version=__version__,
        lifespan=lifespan,
    )

    connection_manager = ConnectionManager(
        WebSocketConfig(max_connections=config.max_connections)
    )
    app.state.config = config
    app.state.connection_manager = connection_manager
    app.state.services = build_services(
        config, connection_manager, detector=detector, pty_factory=pty_factory
    )

    # Add exception handlers
    @app.exception_handler(TermplexException)
    async def termplex_exception_handler(
        request: Request, exc: TermplexException
    ) -> JSONResponse:
        """Handle termplex exceptions raised by API routes."""
        status_code = 404 if isinstance(exc, SessionNotFoundError) else 400
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.kind,
                "message": exc.message,
                "status_code": status_code,
            },
        )

    # Include routers
    app.include_router(websocket_router)

    @app.get("/api/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        services: TerminalServices = app.state.services
        monitor = services.monitor
        return {
            "status": "ok",
            "version": __version__,
            "sessions": services.registry.count(),
            "tmux": monitor.state.value if monitor else "disabled",
            "connections": app.state.connection_manager.get_connection_stats(),
        }

    @app.get("/api/sessions")
    async def list_sessions(request: Request) -> list[dict[str, Any]]:
        """List live terminal sessions."""
        log_api_request("GET", "/api/sessions", _client_ip(request))
        return [session.to_dict() for session in app.state.services.registry.list()]

    @app.delete("/api/sessions/{session_id}", status_code=204)
    async def delete_session(session_id: str, request: Request) -> Response:
        """Close a terminal session."""
        log_api_request("DELETE", f"/api/sessions/{session_id}", _client_ip(request))
        registry: SessionRegistry = app.state.services.registry
        registry.require(session_id)

        # Through the owning channel so its bridge stops cleanly
        if not await app.state.connection_manager.close_session(session_id):
            await registry.close(session_id)
        return Response(status_code=204)

    return app


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"
