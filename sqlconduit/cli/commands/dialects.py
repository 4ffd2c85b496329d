"""Dialect registry CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from sqlconduit.cli.utils import console
from sqlconduit.config import RegistrySettings, load_config
from sqlconduit.exceptions import ConduitError, UnsupportedDialectError
from sqlconduit.registry import DialectRegistry


def _load_registry(ctx: click.Context) -> DialectRegistry:
    config_path = ctx.obj.get('config')
    settings = load_config(config_path).registry if config_path else RegistrySettings()
    return DialectRegistry.from_settings(settings)


@click.command(name="dialects")
@click.argument("dialect", required=False)
@click.pass_context
def dialects_command(ctx: click.Context, dialect: Optional[str]) -> None:
    """List supported dialects, or the drivers of one DIALECT."""
    try:
        registry = _load_registry(ctx)

        if dialect:
            plugin = registry.resolve(dialect)
            console.print(f"[bold blue]{plugin.display_name} ({plugin.identifier})[/bold blue]\n")
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Driver", style="cyan")
            table.add_column("SQLAlchemy URL scheme", style="green")
            table.add_column("Package", style="yellow")
            table.add_column("Port", justify="right")
            table.add_column("Default", style="blue")
            default = plugin.default_driver_config
            for driver in plugin.driver_configs:
                table.add_row(
                    driver.name,
                    driver.drivername,
                    driver.package,
                    str(driver.default_port or ""),
                    "✓" if driver == default else "",
                )
            console.print(table)
            console.print(f"\nProbe query: [dim]{plugin.probe_query}[/dim]")
            console.print(f"Database enumeration: [dim]{plugin.enumeration_strategy.value}[/dim]")
            return

        console.print("[bold blue]Supported Dialects[/bold blue]\n")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Identifier", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Default driver", style="yellow")
        table.add_column("Drivers", justify="right")
        for plugin in registry.all_plugins():
            default = plugin.default_driver_config
            table.add_row(
                plugin.identifier,
                plugin.display_name,
                default.name if default else "-",
                str(len(plugin.driver_configs)),
            )
        console.print(table)

        stats = registry.statistics()
        console.print(
            f"\nTotal: {stats['total_plugins']} plugins / {stats['total_driver_configs']} driver configurations"
        )
    except UnsupportedDialectError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(1) from exc
    except ConduitError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise SystemExit(1) from exc
