"""PostgreSQL dialect plugin."""

from typing import Any, Dict, Optional

from sqlconduit.dialects.base import DialectPlugin, DriverConfig, EnumerationStrategy


class PostgreSQLDialect(DialectPlugin):
    """PostgreSQL dialect plugin."""

    identifier = "POSTGRESQL"
    display_name = "PostgreSQL"
    driver_configs = (
        DriverConfig(name="psycopg2", drivername="postgresql+psycopg2", package="psycopg2", default_port=5432,
                     default=True),
        DriverConfig(name="psycopg 3", drivername="postgresql+psycopg", package="psycopg", default_port=5432),
        DriverConfig(name="pg8000", drivername="postgresql+pg8000", package="pg8000", default_port=5432),
    )
    enumeration_strategy = EnumerationStrategy.CATALOG
    catalog_query = "SELECT datname FROM pg_database WHERE NOT datistemplate ORDER BY datname"
    supports_materialized_views = True
    database_per_connection = True

    def connect_args(self, timeout: int) -> Dict[str, Any]:
        return {'connect_timeout': timeout}

    def statement_timeout_sql(self, seconds: int) -> Optional[str]:
        return f"SET statement_timeout = {int(seconds * 1000)}"
