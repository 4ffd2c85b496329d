"""Shared fixtures for SQL Conduit tests."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

from sqlconduit.config.models import ConnectionDescriptor, PoolSettings
from sqlconduit.dialects import BUILTIN_PLUGINS
from sqlconduit.pool import ConnectionPool
from sqlconduit.registry import DialectRegistry


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCursor:
    """DB-API cursor replaying canned results from its connection."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.description: Optional[List[Sequence[Any]]] = None
        self.rowcount = -1
        self.arraysize = 1
        self._rows: List[Sequence[Any]] = []

    def execute(self, sql: str) -> None:
        self.connection.executed.append(sql)
        error = self.connection.failures.get(sql)
        if error is not None:
            raise error

        columns, rows = self.connection.results.get(sql, (None, []))
        if columns is None:
            self.description = None
            self.rowcount = self.connection.update_counts.get(sql, 1)
            self._rows = []
        else:
            self.description = [(name, str, None, None, None, None, None) for name in columns]
            self.rowcount = -1
            self._rows = list(rows)

    def fetchmany(self, size: int) -> List[Sequence[Any]]:
        batch, self._rows = self._rows[:size], self._rows[size:]
        return batch

    def close(self) -> None:
        self.connection.closed_cursors += 1


class FakeConnection:
    """DB-API style connection recording everything the executor does with it."""

    def __init__(
        self,
        results: Optional[Dict[str, Any]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        update_counts: Optional[Dict[str, int]] = None,
        dialect: Any = None,
    ):
        self.results = results or {}
        self.failures = failures or {}
        self.update_counts = update_counts or {}
        self.dialect = dialect
        self.executed: List[str] = []
        self.autocommit = True
        self.autocommit_history: List[bool] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed_cursors = 0
        self.cursor_error: Optional[Exception] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "autocommit" and "autocommit_history" in self.__dict__:
            self.autocommit_history.append(value)
        super().__setattr__(name, value)

    def cursor(self) -> FakeCursor:
        if self.cursor_error is not None:
            raise self.cursor_error
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> DialectRegistry:
    """Registry holding only the bundled plugins."""
    registry = DialectRegistry(
        entry_point_group="sqlconduit.tests.no_such_group",
        builtin_plugins=BUILTIN_PLUGINS,
    )
    registry.load()
    return registry


@pytest.fixture
def sample_db(tmp_path: Path) -> Path:
    """SQLite database with users, orders and a view."""
    db_path = tmp_path / "sample.db"
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            user_id INTEGER,
            amount REAL,
            status TEXT DEFAULT 'pending',
            FOREIGN KEY (user_id) REFERENCES users (id)
        );

        INSERT INTO users (name, email) VALUES
            ('Alice', 'alice@example.com'),
            ('Bob', 'bob@example.com'),
            ('Carol', NULL);

        INSERT INTO orders (user_id, amount, status) VALUES
            (1, 150.00, 'completed'),
            (1, 89.99, 'pending'),
            (2, 299.50, 'completed'),
            (3, 45.75, 'cancelled');

        CREATE VIEW user_orders AS
        SELECT u.name, o.amount, o.status
        FROM users u
        JOIN orders o ON u.id = o.user_id;
    """)
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def sqlite_descriptor(sample_db: Path) -> ConnectionDescriptor:
    return ConnectionDescriptor(dialect="sqlite", path=str(sample_db), alias="sample")


@pytest.fixture
def pool(registry: DialectRegistry):
    pool = ConnectionPool(registry, PoolSettings(pool_size=2, max_overflow=0, pool_timeout=1))
    yield pool
    pool.dispose()


@pytest.fixture
def make_connection():
    """Factory for ``FakeConnection`` instances."""
    return FakeConnection
