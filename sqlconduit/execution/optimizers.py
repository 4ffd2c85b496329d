"""Statement rewriters applied before execution.

The executor runs them in a fixed order: index hints, row limits, join
normalization. Each one only rewrites text outside string literals.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from sqlconduit.execution.options import ExecutionOptions

logger = logging.getLogger(__name__)

_LITERAL_PATTERN = re.compile(r"('(?:[^']|'')*')")
_SELECT_PATTERN = re.compile(r'^\s*(?:\(\s*)*SELECT\b', re.IGNORECASE)


def _outside_literals(sql: str, rewrite: Callable[[str], str]) -> str:
    """Apply ``rewrite`` to every part of ``sql`` that is not a quoted literal."""
    parts = _LITERAL_PATTERN.split(sql)
    return "".join(part if index % 2 else rewrite(part) for index, part in enumerate(parts))


def _dialect_of(connection: Any) -> Optional[Any]:
    return getattr(connection, 'dialect', None)


class QueryOptimizer:
    """Base class for statement rewriters."""

    name = "optimizer"

    def can_optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> bool:
        raise NotImplementedError

    def optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> str:
        raise NotImplementedError


class IndexHintOptimizer(QueryOptimizer):
    """Adds ``USE INDEX`` hints for tables with a configured index."""

    name = "index_hint"

    _HINT_PATTERN = re.compile(r'\b(?:USE|FORCE|IGNORE)\s+INDEX\b', re.IGNORECASE)
    _RESERVED_AFTER_TABLE = (
        "WHERE|JOIN|INNER|LEFT|RIGHT|CROSS|NATURAL|FULL|OUTER|STRAIGHT_JOIN|ON|USING|GROUP|ORDER|"
        "LIMIT|HAVING|UNION|USE|FORCE|IGNORE|FOR|LOCK|WINDOW|INTO"
    )

    def __init__(self, index_hints: Optional[Dict[str, str]] = None):
        self.index_hints = {table.lower(): index for table, index in (index_hints or {}).items()}

    def _table_pattern(self, table: str) -> re.Pattern:
        return re.compile(
            rf'(\b(?:FROM|JOIN)\s+`?{re.escape(table)}`?)'
            rf'(\s+(?:AS\s+)?(?!(?:{self._RESERVED_AFTER_TABLE})\b)[A-Za-z_]\w*)?(?=\s|,|\)|$)',
            re.IGNORECASE,
        )

    def can_optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> bool:
        dialect = _dialect_of(connection)
        if not self.index_hints or dialect is None or not getattr(dialect, 'supports_index_hints', False):
            return False
        if not _SELECT_PATTERN.match(sql) or self._HINT_PATTERN.search(sql):
            return False
        return any(self._table_pattern(table).search(sql) for table in self.index_hints)

    def optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> str:
        def add_hints(segment: str) -> str:
            for table, index in self.index_hints.items():
                segment = self._table_pattern(table).sub(
                    lambda m, index=index: f"{m.group(1)}{m.group(2) or ''} USE INDEX (`{index}`)",
                    segment,
                )
            return segment

        return _outside_literals(sql, add_hints)


class LimitOptimizer(QueryOptimizer):
    """Caps plain SELECT statements that carry no row limit of their own.

    The cap is one row above ``max_rows`` so truncation stays detectable.
    """

    name = "limit"

    # Clauses after which an appended LIMIT is redundant or invalid
    _EXISTING_LIMIT = re.compile(
        r'\b(?:LIMIT|FETCH|OFFSET|TOP|INTO|LOCK\s+IN\s+SHARE\s+MODE|'
        r'FOR\s+(?:UPDATE|SHARE|NO\s+KEY\s+UPDATE|KEY\s+SHARE))\b',
        re.IGNORECASE,
    )

    def __init__(self, default_limit: Optional[int] = None):
        self.default_limit = default_limit

    def _limit_for(self, options: Optional[ExecutionOptions]) -> Optional[int]:
        if options is not None and options.max_rows > 0:
            return options.max_rows + 1
        return self.default_limit

    def can_optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> bool:
        dialect = _dialect_of(connection)
        if dialect is None or not getattr(dialect, 'supports_limit', False):
            return False
        if not self._limit_for(options):
            return False
        body = _LITERAL_PATTERN.sub("''", sql.strip().rstrip(';'))
        return bool(_SELECT_PATTERN.match(body)) and ';' not in body and not self._EXISTING_LIMIT.search(body)

    def optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> str:
        if not self.can_optimize(sql, connection, options):
            return sql
        return f"{sql.strip().rstrip(';').rstrip()} LIMIT {self._limit_for(options)}"


class JoinOptimizer(QueryOptimizer):
    """Normalizes redundant join keywords to their short forms."""

    name = "join"

    _REWRITES = [
        (re.compile(r'\bINNER\s+JOIN\b', re.IGNORECASE), "JOIN"),
        (re.compile(r'\bLEFT\s+OUTER\s+JOIN\b', re.IGNORECASE), "LEFT JOIN"),
        (re.compile(r'\bRIGHT\s+OUTER\s+JOIN\b', re.IGNORECASE), "RIGHT JOIN"),
    ]

    def can_optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> bool:
        body = _LITERAL_PATTERN.sub("''", sql)
        return any(pattern.search(body) for pattern, _ in self._REWRITES)

    def optimize(self, sql: str, connection: Any, options: Optional[ExecutionOptions] = None) -> str:
        def normalize(segment: str) -> str:
            for pattern, replacement in self._REWRITES:
                segment = pattern.sub(replacement, segment)
            return segment

        return _outside_literals(sql, normalize)


def default_optimizers(index_hints: Optional[Dict[str, str]] = None) -> List[QueryOptimizer]:
    """The standard chain in execution order."""
    return [IndexHintOptimizer(index_hints), LimitOptimizer(), JoinOptimizer()]
