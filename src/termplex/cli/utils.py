"""Shared helpers for termplex commands: config loading, errors and output."""

import json
import sys
from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from ..config import TermplexConfig, load_config
from ..utils.logging import TermplexException


class CliError(Exception):
    """A command failed in a way the user should see, with an exit status."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


def error_handler(func: Callable[..., Any]) -> Callable[..., Any]:
    """Report CliError and termplex errors on stderr and exit nonzero."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (CliError, TermplexException) as e:
            exit_code = e.exit_code if isinstance(e, CliError) else 1
            click.secho(f"Error: {e.message}", fg="red", err=True)
            sys.exit(exit_code)

    return wrapper


def load_context_config(ctx: click.Context) -> TermplexConfig:
    """Load configuration using the group-level --config/--profile/overrides."""
    obj = ctx.obj or {}
    try:
        return load_config(obj.get("config"), obj.get("profile"), obj.get("cli_overrides"))
    except FileNotFoundError as e:
        raise CliError(str(e))


def success_message(message: str) -> None:
    click.secho(f"✓ {message}", fg="green")


def verbose_echo(ctx: click.Context, message: str) -> None:
    """Write ``message`` to stderr when --verbose is set."""
    if ctx.obj and ctx.obj.get("verbose"):
        click.secho(f"[VERBOSE] {message}", fg="blue", err=True)


def output_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def output_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print rows as pipe-separated columns padded to the widest cell."""
    widths = [
        max(len(str(cell)) for cell in column) for column in zip(headers, *rows)
    ]

    def render(cells: list[str]) -> str:
        return " | ".join(str(cell).ljust(width) for cell, width in zip(cells, widths))

    header = render(headers)
    click.echo(header)
    click.echo("-" * len(header))
    for row in rows:
        click.echo(render(row))


def format_output(ctx: click.Context, data: dict[str, Any]) -> None:
    """Print ``data`` as JSON under --json, else one ``key: value`` per line."""
    if ctx.obj and ctx.obj.get("json"):
        output_json(data)
        return
    for key, value in data.items():
        click.echo(f"{key}: {value}")
