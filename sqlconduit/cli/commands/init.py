"""Project initialization command."""

from __future__ import annotations

from pathlib import Path

import click

from sqlconduit.cli.utils import console
from sqlconduit.config import create_sample_config


@click.command(name="init")
@click.argument("path", type=click.Path(), default="sqlconduit.yaml")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init_command(path: str, force: bool) -> None:
    """Write a sample configuration file to PATH."""
    target = Path(path)
    if target.exists() and not force:
        console.print(f"[yellow]{target} already exists, use --force to overwrite[/yellow]")
        raise SystemExit(1)

    create_sample_config(target)
    console.print(f"[green]✓ Created sample configuration at {target}[/green]")
    console.print("\nNext steps:")
    console.print("  1. Edit the connections section for your databases")
    console.print("  2. Export passwords as SQLCONDUIT_PASSWORD_<CONNECTION>")
    console.print(f"  3. Run [cyan]sqlconduit --config {target} health[/cyan]")
