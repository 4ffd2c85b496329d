"""Result containers returned by the execution engine."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ColumnHeader:
    """Column name and driver reported type."""
    name: str
    data_type: Optional[str] = None


@dataclass
class ExecuteResult:
    """Outcome of one statement.

    Values are materialized as text; SQL NULL becomes an empty string, so the
    headers are the only place to tell NULL from an empty value.
    """
    sql: str
    success: bool
    executed_sql: Optional[str] = None
    message: Optional[str] = None
    headers: List[ColumnHeader] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    update_count: Optional[int] = None
    duration_ms: float = 0.0
    truncated: bool = False
    from_cache: bool = False
    query_id: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_names(self) -> List[str]:
        return [header.name for header in self.headers]

    @classmethod
    def failure(cls, sql: str, message: str, executed_sql: Optional[str] = None,
                duration_ms: float = 0.0) -> "ExecuteResult":
        return cls(sql=sql, success=False, executed_sql=executed_sql, message=message, duration_ms=duration_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sql': self.sql,
            'executed_sql': self.executed_sql,
            'success': self.success,
            'message': self.message,
            'headers': [{'name': h.name, 'data_type': h.data_type} for h in self.headers],
            'rows': self.rows,
            'update_count': self.update_count,
            'duration_ms': round(self.duration_ms, 2),
            'truncated': self.truncated,
            'from_cache': self.from_cache,
            'query_id': self.query_id,
        }


@dataclass
class BatchResult:
    """Outcome of a statement batch.

    ``failed_index`` is the 0-based position of the first failing statement.
    """
    results: List[ExecuteResult]
    transactional: bool
    success: bool
    committed: bool = False
    rolled_back: bool = False
    failed_index: Optional[int] = None
    message: Optional[str] = None

    @property
    def executed_count(self) -> int:
        return len(self.results)


@dataclass
class PaginatedResult:
    """One page of rows plus the total row count of the full statement."""
    execute_result: Optional[ExecuteResult]
    total_count: int
    page_number: int
    page_size: int
    success: bool = True
    message: Optional[str] = None

    @property
    def rows(self) -> List[List[str]]:
        return self.execute_result.rows if self.execute_result is not None else []

    @property
    def total_pages(self) -> int:
        if self.total_count <= 0 or self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)

    @property
    def current_page_size(self) -> int:
        return len(self.rows)

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1

    @property
    def is_first_page(self) -> bool:
        return self.page_number == 1

    @property
    def is_last_page(self) -> bool:
        return self.page_number >= self.total_pages

    @property
    def next_page_number(self) -> Optional[int]:
        return self.page_number + 1 if self.has_next else None

    @property
    def previous_page_number(self) -> Optional[int]:
        return self.page_number - 1 if self.has_previous else None

    @property
    def first_record(self) -> int:
        """1-based position of the first row on this page, 0 for an empty page."""
        if self.total_count == 0 or self.current_page_size == 0:
            return 0
        return (self.page_number - 1) * self.page_size + 1

    @property
    def last_record(self) -> int:
        if self.first_record == 0:
            return 0
        return min(self.first_record + self.current_page_size - 1, self.total_count)

    @property
    def summary(self) -> str:
        if self.total_count == 0:
            return "No records found"
        return (
            f"Showing {self.first_record}-{self.last_record} of {self.total_count} records "
            f"(Page {self.page_number} of {self.total_pages})"
        )

    @classmethod
    def empty(cls, page_number: int, page_size: int) -> "PaginatedResult":
        return cls(execute_result=None, total_count=0, page_number=page_number, page_size=page_size)

    @classmethod
    def error(cls, message: str, page_number: int, page_size: int) -> "PaginatedResult":
        return cls(
            execute_result=None,
            total_count=0,
            page_number=page_number,
            page_size=page_size,
            success=False,
            message=message,
        )


@dataclass(frozen=True)
class QueryMetrics:
    """Execution metrics recorded for every executor call."""
    query_id: str
    sql: str
    duration_ms: float
    success: bool
    timestamp: datetime
    from_cache: bool = False
    row_count: int = 0
