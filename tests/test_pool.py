"""Tests for connection pooling and credential lookup."""

import pytest
from sqlalchemy.pool import NullPool, StaticPool

from sqlconduit.config.models import ConnectionDescriptor, PoolSettings
from sqlconduit.exceptions import PoolExhaustedError, UnsupportedDialectError
from sqlconduit.pool import ConnectionPool, EnvironmentCredentialStore, PassthroughCredentialStore


class TestCredentialStores:

    def test_passthrough(self):
        descriptor = ConnectionDescriptor(dialect="mysql", host="db", credential="secret")

        assert PassthroughCredentialStore().get_password(descriptor) == "secret"

    def test_environment_variable_wins(self, monkeypatch):
        descriptor = ConnectionDescriptor(dialect="mysql", host="db", alias="sales-db", credential="fallback")
        monkeypatch.setenv("SQLCONDUIT_PASSWORD_SALES_DB", "from-env")

        store = EnvironmentCredentialStore()

        assert store.variable_name(descriptor) == "SQLCONDUIT_PASSWORD_SALES_DB"
        assert store.get_password(descriptor) == "from-env"

    def test_environment_falls_back_to_credential(self, monkeypatch):
        descriptor = ConnectionDescriptor(dialect="mysql", host="db", alias="hr", credential="fallback")
        monkeypatch.delenv("SQLCONDUIT_PASSWORD_HR", raising=False)

        assert EnvironmentCredentialStore().get_password(descriptor) == "fallback"


class TestConnectionPool:
    """Test ConnectionPool against SQLite."""

    def test_engine_is_cached_per_connection_key(self, pool, sqlite_descriptor):
        assert pool.get_engine(sqlite_descriptor) is pool.get_engine(sqlite_descriptor)
        assert list(pool.get_status()) == [sqlite_descriptor.connection_key]

    def test_probe_engine_is_unpooled(self, pool, sqlite_descriptor):
        engine = pool.get_probe_engine(sqlite_descriptor, 5)

        assert isinstance(engine.pool, NullPool)

    def test_in_memory_sqlite_uses_static_pool(self, pool):
        descriptor = ConnectionDescriptor(dialect="sqlite", path=":memory:")

        assert isinstance(pool.get_engine(descriptor).pool, StaticPool)

    def test_unsupported_dialect(self, pool):
        with pytest.raises(UnsupportedDialectError):
            pool.get_engine(ConnectionDescriptor(dialect="h2", database="mem"))

    def test_acquired_connection_is_in_autocommit(self, pool, sqlite_descriptor):
        with pool.connection(sqlite_descriptor) as conn:
            assert conn.autocommit is True
            assert conn.dialect.identifier == "SQLITE"
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM users")
            assert cursor.fetchone()[0] == 3
            cursor.close()

        assert conn.closed is True

    def test_autocommit_writes_are_visible(self, pool, sqlite_descriptor):
        with pool.connection(sqlite_descriptor) as conn:
            cursor = conn.cursor()
            cursor.execute("INSERT INTO users (name) VALUES ('Dave')")
            cursor.close()

        with pool.connection(sqlite_descriptor) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM users")
            assert cursor.fetchone()[0] == 4
            cursor.close()

    def test_manual_transaction_rollback(self, pool, sqlite_descriptor):
        with pool.connection(sqlite_descriptor) as conn:
            conn.autocommit = False
            cursor = conn.cursor()
            cursor.execute("INSERT INTO users (name) VALUES ('Dave')")
            cursor.close()
            conn.rollback()
            conn.autocommit = True

            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM users")
            assert cursor.fetchone()[0] == 3
            cursor.close()

    def test_exhausted_pool_raises(self, registry, sqlite_descriptor):
        pool = ConnectionPool(registry, PoolSettings(pool_size=1, max_overflow=0, pool_timeout=0.1))
        try:
            held = pool.acquire(sqlite_descriptor)
            with pytest.raises(PoolExhaustedError) as exc_info:
                pool.acquire(sqlite_descriptor)
            assert exc_info.value.connection_key == sqlite_descriptor.connection_key

            pool.release(held)
            pool.release(pool.acquire(sqlite_descriptor))
        finally:
            pool.dispose()

    def test_dispose_clears_engines(self, pool, sqlite_descriptor):
        pool.get_engine(sqlite_descriptor)
        pool.get_probe_engine(sqlite_descriptor, 5)

        pool.dispose()

        assert pool.get_status() == {}
