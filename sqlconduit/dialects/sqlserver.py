"""Microsoft SQL Server dialect plugin."""

from typing import Any, Dict

from sqlconduit.config.models import ConnectionDescriptor
from sqlconduit.dialects.base import DialectPlugin, DriverConfig, EnumerationStrategy, has_top_level_order_by


class SQLServerDialect(DialectPlugin):
    """SQL Server dialect plugin."""

    identifier = "SQLSERVER"
    display_name = "Microsoft SQL Server"
    driver_configs = (
        DriverConfig(name="pyodbc", drivername="mssql+pyodbc", package="pyodbc", default_port=1433, default=True),
        DriverConfig(name="pymssql", drivername="mssql+pymssql", package="pymssql", default_port=1433),
    )
    enumeration_strategy = EnumerationStrategy.CATALOG
    catalog_query = "SELECT name FROM sys.databases ORDER BY name"
    supports_limit = False
    # pyodbc receives a single ODBC connection string
    password_connect_param = None

    def url_query(self, descriptor: ConnectionDescriptor) -> Dict[str, str]:
        query = super().url_query(descriptor)
        query.setdefault('driver', 'ODBC Driver 18 for SQL Server')
        return query

    def connect_args(self, timeout: int) -> Dict[str, Any]:
        return {'timeout': timeout}

    def apply_statement_timeout(self, connection: Any, cursor: Any, seconds: int) -> None:
        # pyodbc query timeout in seconds, 0 disables it
        self.driver_connection(connection).timeout = seconds

    def paginate(self, sql: str, limit: int, offset: int) -> str:
        # OFFSET/FETCH requires an ORDER BY clause on SQL Server
        if not has_top_level_order_by(sql):
            sql = f"{sql} ORDER BY (SELECT NULL)"
        return f"{sql} OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"
