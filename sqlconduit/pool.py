"""Connection pooling and credential lookup on top of SQLAlchemy engines."""

import logging
import os
import re
from contextlib import contextmanager
from threading import Lock
from typing import Any, Dict, Generator, Optional, Protocol, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError, TimeoutError as SQLAlchemyTimeoutError
from sqlalchemy.pool import NullPool, StaticPool

from sqlconduit.config.models import ConnectionDescriptor, PoolSettings
from sqlconduit.dialects.base import DialectPlugin
from sqlconduit.exceptions import ConnectivityError, PoolExhaustedError
from sqlconduit.registry import DialectRegistry

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Supplies decrypted credentials for a descriptor."""

    def get_password(self, descriptor: ConnectionDescriptor) -> Optional[str]:
        ...


class PassthroughCredentialStore:
    """Uses the descriptor's credential as the password."""

    def get_password(self, descriptor: ConnectionDescriptor) -> Optional[str]:
        return descriptor.credential


class EnvironmentCredentialStore:
    """Reads passwords from ``SQLCONDUIT_PASSWORD_<ALIAS>`` environment variables.

    Falls back to the descriptor's own credential when the variable is unset.
    """

    def __init__(self, prefix: str = "SQLCONDUIT_PASSWORD_"):
        self.prefix = prefix

    def variable_name(self, descriptor: ConnectionDescriptor) -> str:
        name = descriptor.alias or descriptor.database or descriptor.dialect
        return self.prefix + re.sub(r'[^A-Za-z0-9]+', '_', name).upper()

    def get_password(self, descriptor: ConnectionDescriptor) -> Optional[str]:
        value = os.getenv(self.variable_name(descriptor))
        return value if value is not None else descriptor.credential


class PooledConnection:
    """A DB-API connection checked out of a pool for one operation.

    Exposes the PEP 249 surface the execution engine needs plus the dialect
    plugin of its target. ``close`` returns the connection to its pool.
    """

    def __init__(
        self,
        dbapi_connection: Any,
        descriptor: ConnectionDescriptor,
        dialect: DialectPlugin,
        sqla_dialect: Any,
    ):
        self.dbapi_connection = dbapi_connection
        self.descriptor = descriptor
        self.dialect = dialect
        self._sqla_dialect = sqla_dialect
        self._closed = False
        self._transaction_isolation = self._read_isolation_level()
        self._autocommit = False
        self.autocommit = True

    @property
    def connection_key(self) -> str:
        return self.descriptor.connection_key

    def _read_isolation_level(self) -> Optional[str]:
        try:
            return self._sqla_dialect.get_isolation_level(self.driver_connection)
        except Exception as e:
            logger.debug(f"Could not read isolation level for {self.connection_key}: {e}")
            return None

    @property
    def driver_connection(self) -> Any:
        return getattr(self.dbapi_connection, 'driver_connection', self.dbapi_connection)

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        value = bool(value)
        if value == self._autocommit:
            return
        if value:
            # Switching on ends any open transaction
            self.dbapi_connection.commit()
            self._sqla_dialect.set_isolation_level(self.driver_connection, "AUTOCOMMIT")
        elif self._transaction_isolation:
            self._sqla_dialect.set_isolation_level(self.driver_connection, self._transaction_isolation)
        else:
            self._sqla_dialect.reset_isolation_level(self.driver_connection)
        self._autocommit = value

    def cursor(self) -> Any:
        return self.dbapi_connection.cursor()

    def commit(self) -> None:
        self.dbapi_connection.commit()

    def rollback(self) -> None:
        self.dbapi_connection.rollback()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Restore transactional mode and return the connection to the pool."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._autocommit:
                self.autocommit = False
        except Exception as e:
            logger.warning(f"Failed to reset autocommit on {self.connection_key}: {e}")
        finally:
            self.dbapi_connection.close()


class ConnectionPool:
    """Hands out pooled connections, one SQLAlchemy engine per connection key."""

    def __init__(
        self,
        registry: DialectRegistry,
        settings: Optional[PoolSettings] = None,
        credential_store: Optional[CredentialStore] = None,
    ):
        self.registry = registry
        self.settings = settings or PoolSettings()
        self.credential_store = credential_store or PassthroughCredentialStore()
        self._engines: Dict[str, Engine] = {}
        self._probe_engines: Dict[Tuple[str, int], Engine] = {}
        self._lock = Lock()

    def get_engine(self, descriptor: ConnectionDescriptor) -> Engine:
        """Get or create the pooled engine for a descriptor.

        Raises:
            UnsupportedDialectError: If the descriptor's dialect is unknown.
            ConnectivityError: If the engine cannot be created.
        """
        key = descriptor.connection_key
        with self._lock:
            engine = self._engines.get(key)
            if engine is None:
                engine = self._create_engine(descriptor, self.settings.connect_timeout, pooled=True)
                self._engines[key] = engine
        return engine

    def get_probe_engine(self, descriptor: ConnectionDescriptor, connect_timeout: int) -> Engine:
        """Engine that opens a fresh, unpooled connection on every connect."""
        key = (descriptor.connection_key, connect_timeout)
        with self._lock:
            engine = self._probe_engines.get(key)
            if engine is None:
                engine = self._create_engine(descriptor, connect_timeout, pooled=False)
                self._probe_engines[key] = engine
        return engine

    def _create_engine(self, descriptor: ConnectionDescriptor, connect_timeout: int, pooled: bool) -> Engine:
        plugin = self.registry.resolve(descriptor.dialect)
        embed_password = plugin.password_connect_param is None
        password = self.credential_store.get_password(descriptor) if embed_password else None

        engine_args: Dict[str, Any] = {
            'connect_args': plugin.connect_args(connect_timeout),
        }
        if descriptor.dialect == "SQLITE" and descriptor.file_path in (None, ":memory:"):
            engine_args['poolclass'] = StaticPool
        elif not pooled:
            engine_args['poolclass'] = NullPool
        else:
            engine_args.update({
                'pool_size': self.settings.pool_size,
                'max_overflow': self.settings.max_overflow,
                'pool_timeout': self.settings.pool_timeout,
                'pool_recycle': self.settings.pool_recycle,
                'pool_pre_ping': self.settings.pool_pre_ping,
            })

        try:
            engine = create_engine(plugin.build_url(descriptor, password=password), **engine_args)
        except Exception as e:
            raise ConnectivityError(
                f"Failed to create database engine for {descriptor.display_name}: {e}",
                connection_key=descriptor.connection_key,
            ) from e

        if not embed_password:
            self._register_credential_hook(engine, descriptor, plugin.password_connect_param)

        logger.debug(f"Created {'pooled' if pooled else 'probe'} engine for {descriptor.display_name}")
        return engine

    def _register_credential_hook(self, engine: Engine, descriptor: ConnectionDescriptor, param: str) -> None:
        """Fetch the password at connect time so it never lives on the engine."""
        store = self.credential_store

        @event.listens_for(engine, "do_connect")
        def provide_password(dialect, conn_rec, cargs, cparams):
            password = store.get_password(descriptor)
            if password is not None:
                cparams[param] = password

    def acquire(self, descriptor: ConnectionDescriptor) -> PooledConnection:
        """Check out a connection for one operation.

        Raises:
            PoolExhaustedError: If no connection became free within the pool timeout.
            ConnectivityError: If the database cannot be reached.
        """
        engine = self.get_engine(descriptor)
        plugin = self.registry.resolve(descriptor.dialect)
        try:
            raw_connection = engine.raw_connection()
        except SQLAlchemyTimeoutError as e:
            raise PoolExhaustedError(
                f"Connection pool exhausted for {descriptor.display_name}: {e}",
                connection_key=descriptor.connection_key,
            ) from e
        except SQLAlchemyError as e:
            raise ConnectivityError(
                f"Unable to connect to {descriptor.display_name}: {e}",
                connection_key=descriptor.connection_key,
            ) from e

        try:
            return PooledConnection(raw_connection, descriptor, plugin, engine.dialect)
        except Exception as e:
            raw_connection.close()
            raise ConnectivityError(
                f"Unable to prepare connection to {descriptor.display_name}: {e}",
                connection_key=descriptor.connection_key,
            ) from e

    def release(self, connection: PooledConnection) -> None:
        """Return a connection to its pool."""
        try:
            connection.close()
        except Exception as e:
            logger.warning(f"Error releasing connection {connection.connection_key}: {e}")

    @contextmanager
    def connection(self, descriptor: ConnectionDescriptor) -> Generator[PooledConnection, None, None]:
        """Get a pooled connection with automatic release."""
        conn = self.acquire(descriptor)
        try:
            yield conn
        finally:
            self.release(conn)

    def get_status(self) -> Dict[str, str]:
        """Pool status text per connection key."""
        with self._lock:
            return {key: engine.pool.status() for key, engine in self._engines.items()}

    def dispose(self) -> None:
        """Dispose every engine and close their pooled connections."""
        with self._lock:
            engines = list(self._engines.values()) + list(self._probe_engines.values())
            self._engines.clear()
            self._probe_engines.clear()

        for engine in engines:
            try:
                engine.dispose()
            except Exception as e:
                logger.error(f"Error disposing engine {engine.url!r}: {e}")
        logger.info(f"Disposed {len(engines)} database engines")
