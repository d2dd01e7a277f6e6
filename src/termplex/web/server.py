"""
Web server startup for termplex.

Provides utilities for starting the FastAPI server with proper configuration.
"""

from typing import Any

import uvicorn

from ..config import TermplexConfig, load_config
from ..utils.logging import LogContext, get_logger
from .app import create_app

logger = get_logger(__name__, LogContext.WEB)

APP_FACTORY = "termplex.web.app:create_app"


def get_server_config(config: TermplexConfig | None = None) -> dict[str, Any]:
    """
    Get server configuration from the loaded termplex configuration.

    Returns:
        Dictionary containing server configuration
    """
    config = config or load_config()
    return {
        "host": config.web_host,
        "port": config.web_port,
        "reload": False,
        "log_level": config.log_level.lower(),
    }


def run_server(
    config: TermplexConfig | None = None,
    host: str | None = None,
    port: int | None = None,
    reload: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Run the FastAPI server with specified or default configuration.

    Args:
        config: Loaded configuration (loaded from disk when omitted)
        host: Host to bind to (overrides config)
        port: Port to bind to (overrides config)
        reload: Enable auto-reload (overrides config)
        log_level: Log level (overrides config)
    """
    config = config or load_config()
    server_config = get_server_config(config)

    # Override with provided parameters
    if host is not None:
        server_config["host"] = host
    if port is not None:
        server_config["port"] = port
    if reload is not None:
        server_config["reload"] = reload
    if log_level is not None:
        server_config["log_level"] = log_level.lower()

    logger.info(
        "Starting termplex web server",
        host=server_config["host"],
        port=server_config["port"],
        reload=server_config["reload"],
        log_level=server_config["log_level"],
    )

    # Reload imports the factory in a fresh process, which reloads config from disk
    if server_config["reload"]:
        target: Any = APP_FACTORY
    else:
        target = create_app(config)

    uvicorn.run(
        target,
        factory=server_config["reload"],
        host=server_config["host"],
        port=server_config["port"],
        reload=server_config["reload"],
        log_level=server_config["log_level"],
        workers=1,
        access_log=False,
    )
