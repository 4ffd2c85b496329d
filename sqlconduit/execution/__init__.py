"""Statement execution engine."""

from sqlconduit.execution.executor import SQLExecutor
from sqlconduit.execution.optimizers import (
    IndexHintOptimizer,
    JoinOptimizer,
    LimitOptimizer,
    QueryOptimizer,
    default_optimizers,
)
from sqlconduit.execution.options import ExecutionOptions, PaginationOptions, SortDirection
from sqlconduit.execution.results import (
    BatchResult,
    ColumnHeader,
    ExecuteResult,
    PaginatedResult,
    QueryMetrics,
)

__all__ = [
    "SQLExecutor",
    # Optimizers
    "QueryOptimizer",
    "IndexHintOptimizer",
    "LimitOptimizer",
    "JoinOptimizer",
    "default_optimizers",
    # Options
    "ExecutionOptions",
    "PaginationOptions",
    "SortDirection",
    # Results
    "BatchResult",
    "ColumnHeader",
    "ExecuteResult",
    "PaginatedResult",
    "QueryMetrics",
]
