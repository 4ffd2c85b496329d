"""Cached discovery of databases, schemas, tables and columns."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from sqlconduit.cache import TTLCache
from sqlconduit.config.models import ConnectionDescriptor, DiscoverySettings
from sqlconduit.dialects.base import DialectPlugin, EnumerationStrategy
from sqlconduit.pool import ConnectionPool
from sqlconduit.registry import DialectRegistry

logger = logging.getLogger(__name__)


@dataclass
class DatabaseInfo:
    """A database (catalog) reachable through a connection."""
    name: str


@dataclass
class SchemaInfo:
    """A schema inside a database."""
    name: str
    database: Optional[str] = None


@dataclass
class TableInfo:
    """A table, view or materialized view."""
    name: str
    table_type: str
    schema: Optional[str] = None
    database: Optional[str] = None


@dataclass
class ColumnInfo:
    """Information about a table column."""
    name: str
    type_name: str
    ordinal_position: int
    nullable: bool = True
    auto_increment: bool = False
    default_value: Optional[str] = None
    size: Optional[int] = None
    decimal_digits: Optional[int] = None
    remarks: Optional[str] = None
    primary_key: bool = False


class SchemaDiscovery:
    """Enumerates database objects for navigation trees.

    Every operation is best-effort: failures are logged and produce an empty
    result. Schema lists are cached per database for ``cache_ttl_seconds``;
    the cache slot does not include the schema name.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        registry: DialectRegistry,
        settings: Optional[DiscoverySettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.pool = pool
        self.registry = registry
        self.settings = settings or DiscoverySettings()
        self._schema_cache: TTLCache[List[SchemaInfo]] = TTLCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            clock=clock,
            name="schema cache",
        )
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = Lock()

    @staticmethod
    def cache_key(descriptor: ConnectionDescriptor, database_name: Optional[str] = None) -> str:
        """Database level cache key: host, port, dialect and database name."""
        database = database_name or descriptor.database or descriptor.path or ''
        return f"{descriptor.host or ''}_{descriptor.port or ''}_{descriptor.dialect}_{database}"

    def _target(self, plugin: DialectPlugin, descriptor: ConnectionDescriptor,
                database_name: Optional[str]) -> ConnectionDescriptor:
        """Descriptor to introspect ``database_name`` through."""
        if (plugin.database_per_connection and database_name
                and database_name != descriptor.database):
            return descriptor.model_copy(update={'database': database_name})
        return descriptor

    def _schema_for(self, plugin: DialectPlugin, database_name: Optional[str],
                    schema_name: Optional[str]) -> Optional[str]:
        if schema_name:
            return schema_name
        if plugin.schemas_are_databases and database_name:
            return database_name
        return None

    def discover_databases(self, descriptor: ConnectionDescriptor) -> List[DatabaseInfo]:
        """List the databases reachable through a connection.

        Returns:
            Discovered databases, empty on any failure.
        """
        try:
            plugin = self.registry.resolve(descriptor.dialect)
            engine = self.pool.get_engine(descriptor)
            with engine.connect() as connection:
                names = self._enumerate_databases(plugin, connection)
            logger.debug(f"Discovered {len(names)} databases on {descriptor.display_name}")
            return [DatabaseInfo(name=name) for name in names]
        except Exception as e:
            logger.error(f"Failed to discover databases on {descriptor.display_name}: {e}")
            return []

    def _enumerate_databases(self, plugin: DialectPlugin, connection: Connection) -> List[str]:
        strategy = plugin.enumeration_strategy
        if strategy == EnumerationStrategy.CATALOG:
            return plugin.list_catalogs(connection)
        if strategy == EnumerationStrategy.SCHEMA:
            return plugin.list_schemas(inspect(connection))

        try:
            catalogs = plugin.list_catalogs(connection)
        except SQLAlchemyError as e:
            logger.debug(f"Catalog listing failed for {plugin.identifier}, trying schemas: {e}")
            catalogs = []
        return catalogs or plugin.list_schemas(inspect(connection))

    def discover_schemas(self, descriptor: ConnectionDescriptor, database_name: Optional[str]) -> List[SchemaInfo]:
        """List schemas of a database, served from cache within the TTL.

        Falls back to catalogs when the dialect reports no schemas. Empty
        results are cached too.
        """
        key = self.cache_key(descriptor, database_name)
        cached = self._schema_cache.get(key)
        if cached is not None:
            logger.debug(f"Schema cache hit for {key}")
            return list(cached)

        try:
            plugin = self.registry.resolve(descriptor.dialect)
            engine = self.pool.get_engine(self._target(plugin, descriptor, database_name))
            with engine.connect() as connection:
                names = plugin.list_schemas(inspect(connection))
                if not names:
                    names = plugin.list_catalogs(connection)
        except Exception as e:
            logger.error(f"Failed to discover schemas of {database_name} on {descriptor.display_name}: {e}")
            return []

        schemas = [SchemaInfo(name=name, database=database_name) for name in names]
        self._schema_cache.put(key, schemas)
        return list(schemas)

    def discover_tables(self, descriptor: ConnectionDescriptor, database_name: Optional[str],
                        schema_name: Optional[str]) -> List[TableInfo]:
        """List tables, views and materialized views, up to ``max_tables``."""
        limit = self.settings.max_tables
        try:
            plugin = self.registry.resolve(descriptor.dialect)
            schema = self._schema_for(plugin, database_name, schema_name)
            engine = self.pool.get_engine(self._target(plugin, descriptor, database_name))

            tables: List[TableInfo] = []
            truncated = False
            with engine.connect() as connection:
                inspector = inspect(connection)
                listings = [("TABLE", inspector.get_table_names), ("VIEW", inspector.get_view_names)]
                if plugin.supports_materialized_views:
                    listings.append(("MATERIALIZED VIEW", inspector.get_materialized_view_names))

                for table_type, list_names in listings:
                    try:
                        names = list_names(schema=schema)
                    except NotImplementedError:
                        continue
                    for name in names:
                        if len(tables) >= limit:
                            truncated = True
                            break
                        tables.append(TableInfo(name=name, table_type=table_type, schema=schema,
                                                database=database_name))
                    if truncated:
                        break
        except Exception as e:
            logger.error(f"Failed to discover tables in {database_name}.{schema_name}: {e}")
            return []

        if truncated:
            logger.warning(f"Table listing for {database_name}.{schema_name} truncated at {limit} entries")
        return tables

    def discover_columns(self, descriptor: ConnectionDescriptor, database_name: Optional[str],
                         schema_name: Optional[str], table_name: str) -> List[ColumnInfo]:
        """List columns of a table, up to ``max_columns``, flagging primary key columns.

        A failure while reading the primary key leaves every flag unset.
        """
        limit = self.settings.max_columns
        try:
            plugin = self.registry.resolve(descriptor.dialect)
            schema = self._schema_for(plugin, database_name, schema_name)
            engine = self.pool.get_engine(self._target(plugin, descriptor, database_name))

            with engine.connect() as connection:
                inspector = inspect(connection)
                raw_columns = inspector.get_columns(table_name, schema=schema)
                columns = [
                    self._convert_column(column, ordinal)
                    for ordinal, column in enumerate(raw_columns[:limit], start=1)
                ]

                try:
                    pk_constraint = inspector.get_pk_constraint(table_name, schema=schema)
                    pk_columns = set(pk_constraint.get('constrained_columns') or [])
                except Exception as e:
                    logger.warning(f"Could not read primary key of {table_name}: {e}")
                    pk_columns = set()
        except Exception as e:
            logger.error(f"Failed to discover columns of {table_name}: {e}")
            return []

        if len(raw_columns) > limit:
            logger.warning(f"Column listing for {table_name} truncated at {limit} entries")

        for column in columns:
            column.primary_key = column.name in pk_columns
        return columns

    def _convert_column(self, column: Dict[str, Any], ordinal: int) -> ColumnInfo:
        sql_type = column.get('type')
        try:
            type_name = str(sql_type)
        except Exception:
            type_name = type(sql_type).__name__

        length = getattr(sql_type, 'length', None)
        precision = getattr(sql_type, 'precision', None)
        default = column.get('default')

        return ColumnInfo(
            name=column['name'],
            type_name=type_name,
            ordinal_position=ordinal,
            nullable=bool(column.get('nullable', True)),
            auto_increment=column.get('autoincrement') is True,
            default_value=str(default) if default is not None else None,
            size=length if length is not None else precision,
            decimal_digits=getattr(sql_type, 'scale', None),
            remarks=column.get('comment'),
        )

    def discover_database_async(self, descriptor: ConnectionDescriptor) -> "Future[Dict[str, Any]]":
        """Discover databases and their schemas in the background.

        Only the first ``async_database_limit`` databases have their schemas
        expanded. The future always completes normally; a failure is reported
        under the ``error`` key.
        """
        return self._get_executor().submit(self._discover_all, descriptor)

    def _discover_all(self, descriptor: ConnectionDescriptor) -> Dict[str, Any]:
        try:
            databases = self.discover_databases(descriptor)
            schemas: Dict[str, List[SchemaInfo]] = {}
            for database in databases[:self.settings.async_database_limit]:
                schemas[database.name] = self.discover_schemas(descriptor, database.name)
            return {'databases': databases, 'schemas': schemas}
        except Exception as e:
            logger.error(f"Async discovery failed for {descriptor.display_name}: {e}")
            return {'databases': [], 'schemas': {}, 'error': str(e)}

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.max_workers,
                    thread_name_prefix="SchemaDiscovery",
                )
            return self._executor

    def clean_expired_cache(self) -> int:
        """Remove expired schema cache entries.

        Returns:
            Number of entries removed.
        """
        removed = self._schema_cache.sweep()
        if removed:
            logger.info(f"Cleaned {removed} expired schema cache entries")
        return removed

    def clear_cache(self) -> None:
        self._schema_cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._schema_cache)

    def shutdown(self) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
