"""Dialect plugins for the supported database families."""

from sqlconduit.dialects.base import DialectPlugin, DriverConfig, EnumerationStrategy
from sqlconduit.dialects.mysql import MariaDBDialect, MySQLDialect
from sqlconduit.dialects.oracle import OracleDialect
from sqlconduit.dialects.postgresql import PostgreSQLDialect
from sqlconduit.dialects.sqlite import SQLiteDialect
from sqlconduit.dialects.sqlserver import SQLServerDialect

# Plugins bundled with the package, registered even without entry point metadata
BUILTIN_PLUGINS = [
    MySQLDialect,
    MariaDBDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    OracleDialect,
    SQLServerDialect,
]

__all__ = [
    "BUILTIN_PLUGINS",
    "DialectPlugin",
    "DriverConfig",
    "EnumerationStrategy",
    "MariaDBDialect",
    "MySQLDialect",
    "OracleDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "SQLServerDialect",
]
