"""Main CLI entry point for SQL Conduit."""

from __future__ import annotations

import click
from rich.panel import Panel
from rich.text import Text

from sqlconduit import __version__
from sqlconduit.cli.commands import register_commands
from sqlconduit.cli.commands.dialects import dialects_command
from sqlconduit.cli.commands.discover import discover_command
from sqlconduit.cli.commands.execute import exec_command
from sqlconduit.cli.commands.health import health_command
from sqlconduit.cli.commands.init import init_command
from sqlconduit.cli.utils import console, setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, config: str, verbose: bool) -> None:
    """SQL Conduit - connect to, inspect and query relational databases."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "verbose": verbose,
        }
    )
    setup_logging(verbose)

    if version:
        console.print(f"SQL Conduit v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        show_dashboard()


# Registered in the order a new user needs them
COMMAND_REGISTRY = [
    init_command,
    dialects_command,
    health_command,
    discover_command,
    exec_command,
]

register_commands(cli, COMMAND_REGISTRY)


def show_dashboard() -> None:
    """Display the command overview."""
    title = Text("SQL Conduit", style="bold blue")
    subtitle = Text("Connectivity and execution for relational databases", style="italic")

    content = Text()
    content.append("⚙️  init      Write a sample configuration\n", style="bold")
    content.append("🔌 dialects  List supported databases and drivers\n", style="bold")
    content.append("💓 health    Probe a connection\n", style="bold")
    content.append("🔍 discover  Browse databases, schemas and tables\n", style="bold")
    content.append("▶️  exec      Run SQL statements\n", style="bold")
    content.append("\nRun 'sqlconduit --help' for available commands", style="dim")

    console.print(Panel(content, title=title, subtitle=subtitle, border_style="blue", padding=(1, 2)))


if __name__ == "__main__":
    cli()
