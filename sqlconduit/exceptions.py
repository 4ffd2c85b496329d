"""Core exceptions for SQL Conduit."""

from typing import Any, Dict, List, Optional


class ConduitError(Exception):
    """Base exception for all SQL Conduit errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(ConduitError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class UnsupportedDialectError(ConfigurationError):
    """Raised when no plugin is registered for a dialect identifier."""

    def __init__(
        self,
        dialect: str,
        supported: List[str],
        details: Optional[Dict[str, Any]] = None
    ):
        message = (
            f"Unsupported database type: {dialect}. "
            f"Supported types: {', '.join(supported) if supported else '(none)'}"
        )
        merged = dict(details or {})
        merged['supported'] = list(supported)
        super().__init__(message, merged)
        self.dialect = dialect
        self.supported = list(supported)


class PluginError(ConfigurationError):
    """Raised when a dialect plugin cannot be loaded or is malformed."""

    def __init__(
        self,
        message: str,
        plugin_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.plugin_name = plugin_name


class ConnectivityError(ConduitError):
    """Raised when a database cannot be reached or a connection cannot be opened."""

    def __init__(
        self,
        message: str,
        connection_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.connection_key = connection_key


class PoolExhaustedError(ConnectivityError):
    """Raised when no pooled connection became available within the pool timeout."""
    pass


class StatementSetupError(ConduitError):
    """Raised when a statement handle cannot be obtained from a connection."""

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.sql = sql


class ExecutionFailure(ConduitError):
    """A statement failed at the driver.

    The executor converts this into an unsuccessful ``ExecuteResult`` so it is
    never seen by callers of the execution engine.
    """

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.sql = sql
