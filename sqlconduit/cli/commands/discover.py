"""Schema discovery CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from sqlconduit.cli.utils import console, load_runtime, resolve_connection
from sqlconduit.exceptions import ConduitError, ConfigurationError


@click.command(name="discover")
@click.option("--connection", "-c", help="Connection to inspect (default: default connection)")
@click.option("--database", "-d", help="Database to list schemas of")
@click.option("--schema", "-s", help="Schema to list tables of")
@click.option("--table", "-t", help="Table to list columns of")
@click.pass_context
def discover_command(
    ctx: click.Context,
    connection: Optional[str],
    database: Optional[str],
    schema: Optional[str],
    table: Optional[str],
) -> None:
    """Browse databases, schemas, tables and columns.

    Without options the databases of the connection are listed; each option
    narrows the listing one level further.
    """
    try:
        with load_runtime(ctx) as runtime:
            name, descriptor = resolve_connection(runtime, connection)
            discovery = runtime.discovery

            if table:
                columns = discovery.discover_columns(descriptor, database, schema, table)
                console.print(f"[bold blue]Columns of {table}[/bold blue]\n")
                if not columns:
                    console.print("[yellow]No columns found[/yellow]")
                    return
                output = Table(show_header=True, header_style="bold magenta")
                output.add_column("#", justify="right")
                output.add_column("Column", style="cyan")
                output.add_column("Type", style="green")
                output.add_column("Nullable", justify="center")
                output.add_column("PK", justify="center")
                output.add_column("Default", style="yellow")
                for column in columns:
                    output.add_row(
                        str(column.ordinal_position),
                        column.name,
                        column.type_name,
                        "✓" if column.nullable else "✗",
                        "🔑" if column.primary_key else "",
                        column.default_value or "",
                    )
                console.print(output)
                return

            if schema:
                tables = discovery.discover_tables(descriptor, database, schema)
                console.print(f"[bold blue]Tables in {schema}[/bold blue]\n")
                output = Table(show_header=True, header_style="bold magenta")
                output.add_column("Name", style="cyan")
                output.add_column("Type", style="green")
                for info in tables:
                    output.add_row(info.name, info.table_type)
                console.print(output)
                console.print(f"\n{len(tables)} objects")
                return

            if database:
                schemas = discovery.discover_schemas(descriptor, database)
                console.print(f"[bold blue]Schemas in {database}[/bold blue]\n")
                for info in schemas:
                    console.print(f"  • {info.name}")
                if not schemas:
                    console.print("[yellow]No schemas found[/yellow]")
                return

            databases = discovery.discover_databases(descriptor)
            console.print(f"[bold blue]Databases on {name}[/bold blue]\n")
            for info in databases:
                console.print(f"  • {info.name}")
            if not databases:
                console.print("[yellow]No databases found[/yellow]")
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except ConduitError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise SystemExit(1) from exc
