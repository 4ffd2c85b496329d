"""Oracle dialect plugin."""

from typing import Any, Dict, List

from sqlconduit.dialects.base import DialectPlugin, DriverConfig, EnumerationStrategy


class OracleDialect(DialectPlugin):
    """Oracle dialect plugin.

    Oracle exposes users as schemas and has no catalog level, so databases are
    enumerated from the schema list.
    """

    identifier = "ORACLE"
    display_name = "Oracle"
    driver_configs = (
        DriverConfig(name="python-oracledb", drivername="oracle+oracledb", package="oracledb", default_port=1521,
                     default=True),
        DriverConfig(name="cx_Oracle", drivername="oracle+cx_oracle", package="cx_Oracle", default_port=1521),
    )
    probe_query = "SELECT 1 FROM DUAL"
    enumeration_strategy = EnumerationStrategy.SCHEMA
    supports_materialized_views = True
    supports_limit = False

    def connect_args(self, timeout: int) -> Dict[str, Any]:
        return {'tcp_connect_timeout': timeout}

    def apply_statement_timeout(self, connection: Any, cursor: Any, seconds: int) -> None:
        # oracledb round-trip timeout in milliseconds, 0 disables it
        self.driver_connection(connection).call_timeout = int(seconds * 1000)

    def paginate(self, sql: str, limit: int, offset: int) -> str:
        return f"{sql} OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"

    def count_query(self, sql: str) -> str:
        # Oracle rejects AS before a table alias
        return f"SELECT COUNT(*) FROM ({sql}) count_query"

    def list_catalogs(self, connection: Any) -> List[str]:
        return []
