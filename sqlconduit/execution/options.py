"""Immutable option objects for statement execution and pagination."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExecutionOptions(BaseModel):
    """Per-call execution settings. Instances are frozen."""

    model_config = ConfigDict(frozen=True)

    cache_enabled: bool = Field(default=False, description="Serve and store results in the query cache")
    optimization_enabled: bool = Field(default=True, description="Run the optimizer chain before execution")
    transactional: bool = Field(default=False, description="Run batches in one transaction")
    query_timeout: int = Field(default=30, ge=0, description="Statement timeout in seconds, 0 disables it")
    fetch_size: int = Field(default=1000, ge=0, description="Cursor array size, 0 keeps the driver default")
    max_rows: int = Field(default=10000, ge=0, description="Rows materialized per result, 0 means no limit")
    collect_metrics: bool = Field(default=True, description="Record QueryMetrics for each call")

    @classmethod
    def default(cls) -> "ExecutionOptions":
        return cls()

    @classmethod
    def fast(cls) -> "ExecutionOptions":
        """Minimal overhead: no cache, no optimization, no metrics, short timeout."""
        return cls(cache_enabled=False, optimization_enabled=False, collect_metrics=False, query_timeout=5)

    @classmethod
    def large_data(cls) -> "ExecutionOptions":
        """Large fetches with no row limit and a five minute timeout."""
        return cls(fetch_size=5000, max_rows=0, query_timeout=300)

    @classmethod
    def cached(cls) -> "ExecutionOptions":
        return cls(cache_enabled=True, optimization_enabled=True, collect_metrics=True)

    @classmethod
    def transactional_batch(cls) -> "ExecutionOptions":
        return cls(transactional=True, cache_enabled=False)


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class PaginationOptions(BaseModel):
    """Page selection for paginated execution. Page numbers are 1-based."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(default=1, ge=1, description="1-based page number")
    page_size: int = Field(default=100, ge=1, description="Rows per page")
    max_page_size: int = Field(default=10000, ge=1, description="Upper bound for page_size")
    sort_column: Optional[str] = Field(default=None, pattern=r'^[A-Za-z_][A-Za-z0-9_.]*$')
    sort_direction: SortDirection = SortDirection.ASC

    @model_validator(mode='after')
    def validate_page_size(self):
        """Page size may not exceed max_page_size."""
        if self.page_size > self.max_page_size:
            raise ValueError(f"Page size cannot exceed {self.max_page_size}")
        return self

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size

    @classmethod
    def default(cls) -> "PaginationOptions":
        return cls()

    @classmethod
    def small_dataset(cls) -> "PaginationOptions":
        return cls(page_size=50)

    @classmethod
    def large_dataset(cls) -> "PaginationOptions":
        return cls(page_size=1000)

    @classmethod
    def with_sorting(cls, column: str, direction: SortDirection = SortDirection.ASC) -> "PaginationOptions":
        return cls(sort_column=column, sort_direction=direction)
