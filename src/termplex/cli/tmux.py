"""CLI commands for tmux discovery."""

import asyncio

import click

from ..tmux import TmuxDetector
from ..utils.logging import TmuxError
from .utils import CliError, error_handler, load_context_config, output_json, output_table


@click.group()
def tmux() -> None:
    """Inspect the local tmux server.

    Shows the sessions a browser terminal can attach to and the clients
    currently attached to them.
    """
    pass


@tmux.command("list")
@click.pass_context
@error_handler
def list_sessions(ctx: click.Context) -> None:
    """List tmux sessions available for attaching."""
    config = load_context_config(ctx)
    detector = TmuxDetector(timeout=config.tmux_command_timeout)
    if not detector.is_available():
        raise CliError("tmux is not installed")

    try:
        sessions = asyncio.run(detector.list_sessions())
    except TmuxError as e:
        raise CliError(f"Error listing sessions: {e.message}")

    if ctx.obj and ctx.obj.get("json"):
        output_json([s.model_dump() for s in sessions])
        return

    if not sessions:
        click.echo("No tmux sessions found")
        return

    output_table(
        ["Name", "Windows", "Attached"],
        [[s.name, str(s.windows), str(s.attached)] for s in sessions],
    )


@tmux.command()
@click.pass_context
@error_handler
def clients(ctx: click.Context) -> None:
    """List attached tmux clients by terminal device."""
    config = load_context_config(ctx)
    detector = TmuxDetector(timeout=config.tmux_command_timeout)
    if not detector.is_available():
        raise CliError("tmux is not installed")

    try:
        attached = asyncio.run(detector.list_clients())
    except TmuxError as e:
        raise CliError(f"Error listing clients: {e.message}")

    if ctx.obj and ctx.obj.get("json"):
        output_json(attached)
        return

    if not attached:
        click.echo("No tmux clients attached")
        return

    output_table(
        ["TTY", "Session"], [[tty, name] for tty, name in sorted(attached.items())]
    )
