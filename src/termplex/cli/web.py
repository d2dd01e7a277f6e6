"""Web server command."""

from pathlib import Path

import click

from ..utils.logging import setup_logging
from ..web.server import run_server
from .utils import error_handler, load_context_config, verbose_echo


@click.command()
@click.option("--host", "-h", default=None, help="Host to bind to (overrides config)")
@click.option("--port", "-p", type=int, default=None, help="Port to run on (overrides config)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
@error_handler
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the terminal server."""
    config = load_context_config(ctx)
    setup_logging(
        config.log_level,
        log_file=Path(config.log_file).expanduser() if config.log_file else None,
        enable_structured=config.structured_logging,
    )

    bind_host = host or config.web_host
    bind_port = port or config.web_port
    click.echo(f"Starting termplex on {bind_host}:{bind_port}")
    verbose_echo(ctx, f"Shell: {config.resolve_shell()}")

    if reload:
        click.echo("Development mode: auto-reload enabled")

    try:
        run_server(config, host=bind_host, port=bind_port, reload=reload)
    except KeyboardInterrupt:
        click.echo("\nShutting down termplex...")
