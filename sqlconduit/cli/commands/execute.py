"""Statement execution CLI commands."""

from __future__ import annotations

from typing import Optional, Tuple

import click
from rich.markup import escape
from rich.table import Table

from sqlconduit.cli.utils import console, load_runtime, resolve_connection
from sqlconduit.exceptions import ConduitError, ConfigurationError
from sqlconduit.execution import BatchResult, ExecuteResult, ExecutionOptions, PaginationOptions


def _show_rows(result: ExecuteResult, title: Optional[str] = None) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    for name in result.column_names:
        table.add_column(name)
    for row in result.rows:
        table.add_row(*[escape(value) for value in row])
    console.print(table)


def _show_result(result: ExecuteResult) -> None:
    if not result.success:
        console.print(f"[red]✗ {escape(result.message or '')}[/red]")
        return

    if result.headers:
        _show_rows(result)
        suffix = " (truncated)" if result.truncated else ""
        console.print(f"\n{result.row_count} rows{suffix} in {result.duration_ms:.1f} ms")
    else:
        affected = result.update_count if result.update_count is not None else 0
        console.print(f"[green]✓ {affected} rows affected[/green] in {result.duration_ms:.1f} ms")

    if result.from_cache:
        console.print("[dim]Served from query cache[/dim]")
    if result.executed_sql and result.executed_sql != result.sql:
        console.print(f"[dim]Executed: {escape(result.executed_sql)}[/dim]")


def _show_batch(batch: BatchResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Statement", style="cyan")
    table.add_column("Status")
    table.add_column("Rows", justify="right")
    for index, result in enumerate(batch.results, start=1):
        status = "[green]✓[/green]" if result.success else f"[red]✗ {escape(result.message or '')}[/red]"
        rows = result.update_count if result.update_count is not None else result.row_count
        table.add_row(str(index), escape(result.sql), status, str(rows))
    console.print(table)
    color = "green" if batch.success else "red"
    if batch.message:
        console.print(f"[{color}]{escape(batch.message)}[/{color}]")


@click.command(name="exec")
@click.argument("statements", nargs=-1, required=True)
@click.option("--connection", "-c", help="Connection to run on (default: default connection)")
@click.option("--page", type=click.IntRange(min=1), help="Return this page of the result")
@click.option("--page-size", type=click.IntRange(min=1), default=100, show_default=True, help="Rows per page")
@click.option("--max-rows", type=click.IntRange(min=0), default=10000, show_default=True,
              help="Rows to materialize, 0 for no limit")
@click.option("--timeout", type=click.IntRange(min=0), default=30, show_default=True,
              help="Statement timeout in seconds")
@click.option("--cache/--no-cache", default=False, help="Serve and store results in the query cache")
@click.option("--transactional", is_flag=True, help="Run several statements in one transaction")
@click.pass_context
def exec_command(
    ctx: click.Context,
    statements: Tuple[str, ...],
    connection: Optional[str],
    page: Optional[int],
    page_size: int,
    max_rows: int,
    timeout: int,
    cache: bool,
    transactional: bool,
) -> None:
    """Execute one or more SQL STATEMENTS."""
    if page is not None and len(statements) > 1:
        raise click.UsageError("--page applies to a single statement")

    try:
        with load_runtime(ctx) as runtime:
            _, descriptor = resolve_connection(runtime, connection)
            executor = runtime.executor

            if page is not None:
                pagination = PaginationOptions(page_number=page, page_size=page_size,
                                               max_page_size=max(page_size, 10000))
                paged = executor.execute_paginated_on(descriptor, statements[0], pagination)
                if not paged.success:
                    console.print(f"[red]✗ {escape(paged.message or '')}[/red]")
                    raise SystemExit(1)
                if paged.execute_result is not None:
                    _show_rows(paged.execute_result)
                console.print(f"\n{paged.summary}")
                return

            options = ExecutionOptions(
                cache_enabled=cache and not transactional,
                transactional=transactional,
                max_rows=max_rows,
                query_timeout=timeout,
            )

            if len(statements) > 1 or transactional:
                batch = executor.execute_batch_on(descriptor, list(statements), options)
                _show_batch(batch)
                if not batch.success:
                    raise SystemExit(1)
                return

            result = executor.execute_on(descriptor, statements[0], options)
            _show_result(result)
            if not result.success:
                raise SystemExit(1)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except ConduitError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise SystemExit(1) from exc
