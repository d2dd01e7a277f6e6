"""Configuration management commands."""

import click

from ..config import TermplexConfig, find_config_file, save_config
from ..config.loader import ENV_PREFIX, load_config_file
from .utils import CliError, error_handler, format_output, load_context_config, success_message


@click.group()
def config() -> None:
    """Manage configuration settings."""
    pass


@config.command()
@click.pass_context
@error_handler
def show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    config_obj = load_context_config(ctx)
    format_output(ctx, config_obj.model_dump())


@config.command()
@click.pass_context
@error_handler
def validate(ctx: click.Context) -> None:
    """Validate current configuration."""
    load_context_config(ctx)  # raises if invalid

    if not (ctx.obj and ctx.obj.get("quiet")):
        click.echo("Configuration is valid")


@config.command()
@click.option("--path", help="Custom path for config file")
@click.pass_context
@error_handler
def init(ctx: click.Context, path: str | None) -> None:
    """Initialize configuration file with defaults."""
    saved_path = save_config(TermplexConfig(), path)

    if not (ctx.obj and ctx.obj.get("quiet")):
        success_message(f"Configuration initialized at: {saved_path}")


@config.command()
@click.pass_context
@error_handler
def profiles(ctx: click.Context) -> None:
    """List available configuration profiles."""
    config_path = ctx.obj.get("config") if ctx.obj else None
    try:
        config_file = find_config_file(config_path)
    except FileNotFoundError as e:
        raise CliError(str(e))

    if not config_file:
        click.echo("No configuration file found. Use 'config init' to create one.")
        return

    profiles_data = load_config_file(config_file).get("profiles", {})
    if not profiles_data:
        click.echo("No profiles defined in configuration file.")
        return

    format_output(ctx, {"profiles": sorted(profiles_data)})


@config.command()
def locations() -> None:
    """Show configuration file search locations."""
    locations = [
        "./termplex.yaml",
        "./termplex.yml",
        "~/.config/termplex/config.yaml",
        "~/.termplex.yaml",
    ]

    click.echo("Configuration file search locations (in order):")
    for i, location in enumerate(locations, 1):
        click.echo(f"  {i}. {location}")

    click.echo(f"\nEnvironment variables ({ENV_PREFIX}*):")
    for key in TermplexConfig.model_fields:
        click.echo(f"  {ENV_PREFIX}{key.upper()}")
