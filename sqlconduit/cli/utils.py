"""Shared CLI utilities for SQL Conduit."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler

from sqlconduit.config import ConduitConfig, ConnectionDescriptor, EnvironmentSettings, load_config
from sqlconduit.runtime import ConduitRuntime

# Single console instance reused across CLI modules
console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through rich.

    ``--verbose`` forces DEBUG; otherwise ``SQLCONDUIT_LOG_LEVEL`` decides.
    """
    level_name = "DEBUG" if verbose else EnvironmentSettings().log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    console.print(f"[red]{message}: {error}[/red]")
    if verbose:
        console.print_exception()


def load_runtime(ctx: click.Context) -> ConduitRuntime:
    """Build a runtime from the configuration selected on the command line."""
    config: ConduitConfig = load_config(ctx.obj.get('config'))
    return ConduitRuntime.from_config(config)


def resolve_connection(runtime: ConduitRuntime, name: Optional[str]) -> Tuple[str, ConnectionDescriptor]:
    """Look up a configured connection by name, defaulting to the configured default.

    Raises:
        click.BadParameter: If the connection is not configured.
    """
    try:
        descriptor = runtime.config.get_connection(name)
    except KeyError as exc:
        raise click.BadParameter(str(exc.args[0]), param_hint="CONNECTION") from exc
    return name or runtime.config.default_connection, descriptor
