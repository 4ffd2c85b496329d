"""Command line interface for SQL Conduit."""

from sqlconduit.cli.main import cli

__all__ = ["cli"]
