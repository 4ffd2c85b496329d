"""Connection health CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from sqlconduit.cli.utils import console, load_runtime, resolve_connection
from sqlconduit.exceptions import ConduitError, ConfigurationError
from sqlconduit.health import HealthCheckResult, HealthStatus

STATUS_STYLES = {
    HealthStatus.HEALTHY: "🟢 [green]HEALTHY[/green]",
    HealthStatus.DEGRADED: "🟡 [yellow]DEGRADED[/yellow]",
    HealthStatus.SLOW: "🟠 [yellow]SLOW[/yellow]",
    HealthStatus.UNHEALTHY: "🔴 [red]UNHEALTHY[/red]",
    HealthStatus.UNKNOWN: "⚪ UNKNOWN",
}


def _show_result(name: str, result: HealthCheckResult) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Property", style="cyan", width=18)
    table.add_column("Value")
    table.add_row("Connection:", name)
    table.add_row("Status:", STATUS_STYLES[result.status])
    table.add_row("Connect:", "✓" if result.can_connect else "✗")
    table.add_row("Query probe:", "✓" if result.can_execute_query else "✗")
    table.add_row("Metadata probe:", "✓" if result.can_access_metadata else "✗")
    table.add_row("Response time:", f"{result.response_time_ms:.1f} ms")
    console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")
    for error in result.errors:
        console.print(f"[red]✗ {escape(error)}[/red]")


@click.command(name="health")
@click.option("--connection", "-c", help="Connection to probe (default: default connection)")
@click.option("--recover", is_flag=True, help="Retry with backoff until the connection is healthy")
@click.pass_context
def health_command(ctx: click.Context, connection: Optional[str], recover: bool) -> None:
    """Probe a connection and report its health."""
    try:
        with load_runtime(ctx) as runtime:
            name, descriptor = resolve_connection(runtime, connection)
            console.print("[bold blue]Connection Health[/bold blue]\n")

            result = runtime.health.check_connection_health(descriptor)
            _show_result(name, result)

            healthy = result.is_healthy
            if not healthy and recover:
                console.print("\n[bold]Attempting recovery...[/bold]")
                healthy = runtime.health.attempt_connection_recovery(descriptor)
                record = runtime.health.get_connection_health(descriptor.connection_key)
                if record is not None and record.last_result is not None:
                    _show_result(name, record.last_result)

            if not healthy and result.status == HealthStatus.UNHEALTHY:
                raise SystemExit(1)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except ConduitError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise SystemExit(1) from exc
