"""Main CLI entry point for termplex."""

import click

from .. import __version__
from .config import config
from .tmux import tmux
from .web import serve


@click.group()
@click.version_option(version=__version__, prog_name="termplex")
@click.option("--config", "-c", help="Configuration file path")
@click.option("--profile", "-p", help="Configuration profile to use")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
# Configuration override flags
@click.option("--web-port", type=int, help="Override web_port setting")
@click.option("--web-host", help="Override web_host setting")
@click.option("--shell", help="Override shell setting")
@click.option("--log-level", help="Override log_level setting")
@click.pass_context
def main(
    ctx: click.Context,
    config: str | None,
    profile: str | None,
    verbose: bool,
    quiet: bool,
    json: bool,
    web_port: int | None,
    web_host: str | None,
    shell: str | None,
    log_level: str | None,
) -> None:
    """termplex - browser terminals multiplexed over one WebSocket.

    Use commands to organize functionality:
    - serve: Run the terminal server
    - tmux: Inspect the local tmux server
    - config: Manage configuration settings
    """
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["profile"] = profile
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json"] = json

    # Store CLI overrides for configuration
    ctx.obj["cli_overrides"] = {
        "web_port": web_port,
        "web_host": web_host,
        "shell": shell,
        "log_level": log_level,
    }
    # Remove None values
    ctx.obj["cli_overrides"] = {
        k: v for k, v in ctx.obj["cli_overrides"].items() if v is not None
    }

    # Validate conflicting options
    if verbose and quiet:
        raise click.UsageError("Cannot use both --verbose and --quiet options")


# Add commands
main.add_command(serve)
main.add_command(tmux)
main.add_command(config)


if __name__ == "__main__":
    main()
