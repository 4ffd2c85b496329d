"""Base dialect plugin describing per-database driver behaviour."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.engine import Connection, URL

from sqlconduit.config.models import ConnectionDescriptor

_LITERAL_PATTERN = re.compile(r"'(?:[^']|'')*'")
_ORDER_BY_PATTERN = re.compile(r"\bORDER\s+BY\b", re.IGNORECASE)


def has_top_level_order_by(sql: str) -> bool:
    """Whether ``sql`` has an ORDER BY outside parentheses and string literals."""
    body = _LITERAL_PATTERN.sub("''", sql)
    depth = 0
    top_level = []
    for char in body:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
            char = " "
        top_level.append(char if depth == 0 else " ")
    return bool(_ORDER_BY_PATTERN.search("".join(top_level)))


class EnumerationStrategy(str, Enum):
    """How a dialect lists the databases reachable through a connection."""
    CATALOG = "catalog"      # Catalog listing SQL
    SCHEMA = "schema"        # Schemas act as databases
    GENERIC = "generic"      # Try catalogs, then schemas


@dataclass(frozen=True)
class DriverConfig:
    """One way of reaching a dialect through a Python DB-API driver."""
    name: str
    drivername: str
    package: str
    default_port: Optional[int] = None
    default: bool = False


class DialectPlugin:
    """Capability descriptor for one database family.

    Subclasses set the class attributes below and override the hooks whose
    SQL differs from the ANSI defaults. Plugins are immutable once loaded and
    are shared by every thread resolving them through the registry.
    """

    identifier: str = ""
    display_name: str = ""
    driver_configs: Tuple[DriverConfig, ...] = ()
    probe_query: str = "SELECT 1"
    enumeration_strategy: EnumerationStrategy = EnumerationStrategy.GENERIC
    catalog_query: Optional[str] = None
    supports_limit: bool = True
    supports_materialized_views: bool = False
    supports_index_hints: bool = False
    # A schema name addresses a whole database (MySQL)
    schemas_are_databases: bool = False
    # Each database needs its own connection to be introspected (PostgreSQL)
    database_per_connection: bool = False
    # DB-API connect() keyword carrying the password; None embeds it in the URL
    password_connect_param: Optional[str] = "password"

    @property
    def default_driver_config(self) -> Optional[DriverConfig]:
        """Driver flagged as default, else the first declared one."""
        for config in self.driver_configs:
            if config.default:
                return config
        return self.driver_configs[0] if self.driver_configs else None

    def build_url(
        self,
        descriptor: ConnectionDescriptor,
        password: Optional[str] = None,
        driver: Optional[DriverConfig] = None,
    ) -> URL:
        """Build the SQLAlchemy URL for a descriptor.

        Args:
            descriptor: Connection target.
            password: Decrypted credential supplied by the credential store.
            driver: Driver to use instead of the default one.

        Returns:
            SQLAlchemy URL object. Passwords are kept out of its string form.
        """
        driver_config = driver or self.default_driver_config
        if driver_config is None:
            raise ValueError(f"Dialect {self.identifier} declares no driver configuration")

        return URL.create(
            drivername=driver_config.drivername,
            username=descriptor.user,
            password=password,
            host=descriptor.host,
            port=descriptor.port or driver_config.default_port,
            database=descriptor.database,
            query=self.url_query(descriptor),
        )

    def url_query(self, descriptor: ConnectionDescriptor) -> Dict[str, str]:
        """URL query parameters derived from the descriptor options."""
        return {str(key): str(value) for key, value in descriptor.options.items()}

    def connect_args(self, timeout: int) -> Dict[str, Any]:
        """DB-API connect arguments for a connect timeout in seconds."""
        return {}

    def statement_timeout_sql(self, seconds: int) -> Optional[str]:
        """Session statement that bounds statement run time, if the dialect has one.

        A value of ``0`` must produce the statement that lifts the limit.
        """
        return None

    @staticmethod
    def driver_connection(connection: Any) -> Any:
        """The raw driver connection behind a pooled or plain DB-API connection."""
        return getattr(connection, 'driver_connection', connection)

    def apply_statement_timeout(self, connection: Any, cursor: Any, seconds: int) -> None:
        """Bound the run time of statements issued next on ``connection``.

        The limit stays in force until ``clear_statement_timeout`` is called,
        so callers pair the two around a single statement.

        Args:
            connection: Connection the statement runs on.
            cursor: Cursor the statement runs on.
            seconds: Limit in seconds, ``0`` for none.
        """
        statement = self.statement_timeout_sql(seconds)
        if statement:
            cursor.execute(statement)

    def clear_statement_timeout(self, connection: Any, cursor: Any) -> None:
        """Lift a limit set by ``apply_statement_timeout``."""
        self.apply_statement_timeout(connection, cursor, 0)

    def paginate(self, sql: str, limit: int, offset: int) -> str:
        """Append a row window to a SELECT statement."""
        return f"{sql} LIMIT {limit} OFFSET {offset}"

    def count_query(self, sql: str) -> str:
        """Wrap a statement in a counting subquery."""
        return f"SELECT COUNT(*) FROM ({sql}) AS count_query"

    def list_catalogs(self, connection: Connection) -> List[str]:
        """List catalogs using the dialect's catalog query.

        Returns:
            Catalog names, empty when the dialect has no catalog query.
        """
        if not self.catalog_query:
            return []
        result = connection.exec_driver_sql(self.catalog_query)
        return [str(row[0]) for row in result if row[0] is not None]

    def list_schemas(self, inspector: Any) -> List[str]:
        """List schemas below the connected database."""
        return list(inspector.get_schema_names())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identifier}>"
