"""Tests for the statement optimizers."""

from types import SimpleNamespace

import pytest

from sqlconduit.dialects import MySQLDialect, OracleDialect, PostgreSQLDialect
from sqlconduit.execution import (
    ExecutionOptions,
    IndexHintOptimizer,
    JoinOptimizer,
    LimitOptimizer,
    default_optimizers,
)


def on(dialect):
    return SimpleNamespace(dialect=dialect)


class TestIndexHintOptimizer:

    @pytest.fixture
    def optimizer(self):
        return IndexHintOptimizer({"orders": "idx_orders_user"})

    def test_adds_hint_after_table(self, optimizer):
        sql = "SELECT * FROM orders WHERE user_id = 1"

        assert optimizer.can_optimize(sql, on(MySQLDialect()))
        assert optimizer.optimize(sql, on(MySQLDialect())) == (
            "SELECT * FROM orders USE INDEX (`idx_orders_user`) WHERE user_id = 1"
        )

    def test_keeps_alias_before_hint(self, optimizer):
        sql = "SELECT o.id FROM users u JOIN orders o ON o.user_id = u.id"

        assert optimizer.optimize(sql, on(MySQLDialect())) == (
            "SELECT o.id FROM users u JOIN orders o USE INDEX (`idx_orders_user`) ON o.user_id = u.id"
        )

    def test_requires_index_hint_support(self, optimizer):
        assert not optimizer.can_optimize("SELECT * FROM orders", on(PostgreSQLDialect()))

    def test_skips_existing_hints_and_other_tables(self, optimizer):
        mysql = on(MySQLDialect())

        assert not optimizer.can_optimize("SELECT * FROM orders FORCE INDEX (primary)", mysql)
        assert not optimizer.can_optimize("SELECT * FROM users", mysql)
        assert not optimizer.can_optimize("DELETE FROM orders", mysql)

    def test_leaves_literals_alone(self, optimizer):
        sql = "SELECT * FROM orders WHERE note = 'FROM orders'"

        assert optimizer.optimize(sql, on(MySQLDialect())) == (
            "SELECT * FROM orders USE INDEX (`idx_orders_user`) WHERE note = 'FROM orders'"
        )


class TestLimitOptimizer:

    def test_caps_one_above_max_rows(self):
        optimizer = LimitOptimizer()
        options = ExecutionOptions(max_rows=100)

        assert optimizer.can_optimize("SELECT * FROM t;", on(PostgreSQLDialect()), options)
        assert optimizer.optimize("SELECT * FROM t;", on(PostgreSQLDialect()), options) == "SELECT * FROM t LIMIT 101"

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM t LIMIT 5",
        "SELECT * FROM t FETCH FIRST 5 ROWS ONLY",
        "SELECT * FROM t FOR UPDATE",
        "UPDATE t SET a = 1",
        "SELECT 1; SELECT 2",
    ])
    def test_leaves_bounded_or_non_select_statements(self, sql):
        assert not LimitOptimizer().can_optimize(sql, on(PostgreSQLDialect()), ExecutionOptions())

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM t WHERE id = 1 LOCK IN SHARE MODE",
        "SELECT * FROM t FOR SHARE",
        "SELECT * FROM t FOR NO KEY UPDATE",
        "SELECT * FROM t FOR KEY SHARE",
    ])
    def test_locking_clauses_are_left_alone(self, sql):
        optimizer = LimitOptimizer()

        assert not optimizer.can_optimize(sql, on(MySQLDialect()), ExecutionOptions())
        assert optimizer.optimize(sql, on(MySQLDialect()), ExecutionOptions()) == sql

    def test_limit_keyword_inside_literal_does_not_count(self):
        sql = "SELECT * FROM t WHERE note = 'no LIMIT here'"

        assert LimitOptimizer().can_optimize(sql, on(PostgreSQLDialect()), ExecutionOptions())

    def test_requires_limit_support(self):
        assert not LimitOptimizer().can_optimize("SELECT * FROM t", on(OracleDialect()), ExecutionOptions())

    def test_unlimited_rows_skip_rewrite(self):
        assert not LimitOptimizer().can_optimize(
            "SELECT * FROM t", on(PostgreSQLDialect()), ExecutionOptions(max_rows=0)
        )

    def test_default_limit_without_options(self):
        optimizer = LimitOptimizer(default_limit=50)

        assert optimizer.optimize("SELECT * FROM t", on(PostgreSQLDialect())) == "SELECT * FROM t LIMIT 50"


class TestJoinOptimizer:

    def test_normalizes_join_keywords(self):
        sql = "SELECT * FROM a INNER JOIN b ON 1=1 LEFT OUTER JOIN c ON 1=1 right outer join d ON 1=1"

        assert JoinOptimizer().optimize(sql, None) == (
            "SELECT * FROM a JOIN b ON 1=1 LEFT JOIN c ON 1=1 RIGHT JOIN d ON 1=1"
        )

    def test_ignores_literals(self):
        sql = "SELECT 'INNER JOIN' AS label FROM t"

        assert not JoinOptimizer().can_optimize(sql, None)


def test_default_chain_order():
    names = [optimizer.name for optimizer in default_optimizers({"t": "idx"})]

    assert names == ["index_hint", "limit", "join"]
