"""MySQL and MariaDB dialect plugins."""

from typing import Any, Dict, List, Optional

from sqlconduit.config.models import ConnectionDescriptor
from sqlconduit.dialects.base import DialectPlugin, DriverConfig, EnumerationStrategy


class MySQLDialect(DialectPlugin):
    """MySQL dialect plugin."""

    identifier = "MYSQL"
    display_name = "MySQL"
    driver_configs = (
        DriverConfig(name="PyMySQL", drivername="mysql+pymysql", package="pymysql", default_port=3306, default=True),
        DriverConfig(name="mysqlclient", drivername="mysql+mysqldb", package="MySQLdb", default_port=3306),
        DriverConfig(
            name="MySQL Connector/Python",
            drivername="mysql+mysqlconnector",
            package="mysql.connector",
            default_port=3306,
        ),
    )
    enumeration_strategy = EnumerationStrategy.CATALOG
    catalog_query = (
        "SELECT schema_name FROM information_schema.schemata "
        "WHERE schema_name NOT IN ('information_schema', 'mysql', 'performance_schema', 'sys') "
        "ORDER BY schema_name"
    )
    supports_index_hints = True
    schemas_are_databases = True

    def url_query(self, descriptor: ConnectionDescriptor) -> Dict[str, str]:
        query = super().url_query(descriptor)
        # Set default charset if not specified
        query.setdefault('charset', 'utf8mb4')
        return query

    def connect_args(self, timeout: int) -> Dict[str, Any]:
        return {'connect_timeout': timeout}

    def statement_timeout_sql(self, seconds: int) -> Optional[str]:
        # Only bounds read-only SELECT statements on MySQL
        return f"SET SESSION MAX_EXECUTION_TIME = {int(seconds * 1000)}"

    def list_schemas(self, inspector: Any) -> List[str]:
        # MySQL has no schema level below a database; callers fall back to catalogs.
        return []


class MariaDBDialect(MySQLDialect):
    """MariaDB dialect plugin."""

    identifier = "MARIADB"
    display_name = "MariaDB"
    driver_configs = (
        DriverConfig(name="PyMySQL", drivername="mariadb+pymysql", package="pymysql", default_port=3306, default=True),
        DriverConfig(name="MariaDB Connector/Python", drivername="mariadb+mariadbconnector", package="mariadb",
                     default_port=3306),
    )

    def statement_timeout_sql(self, seconds: int) -> Optional[str]:
        return f"SET SESSION max_statement_time = {seconds}"
