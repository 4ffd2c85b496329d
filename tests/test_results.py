"""Tests for execution options and result containers."""

import pytest
from pydantic import ValidationError

from sqlconduit.execution import (
    ExecuteResult,
    ExecutionOptions,
    PaginatedResult,
    PaginationOptions,
    SortDirection,
)


def page_of(rows, total, page_number, page_size):
    result = ExecuteResult(sql="SELECT 1", success=True, rows=[[str(r)] for r in rows])
    return PaginatedResult(execute_result=result, total_count=total, page_number=page_number, page_size=page_size)


class TestExecutionOptions:

    def test_defaults(self):
        options = ExecutionOptions.default()

        assert options.cache_enabled is False
        assert options.optimization_enabled is True
        assert options.transactional is False
        assert options.query_timeout == 30
        assert options.fetch_size == 1000
        assert options.max_rows == 10000
        assert options.collect_metrics is True

    def test_presets(self):
        assert ExecutionOptions.fast().query_timeout == 5
        assert ExecutionOptions.fast().collect_metrics is False
        assert ExecutionOptions.large_data().max_rows == 0
        assert ExecutionOptions.cached().cache_enabled is True
        assert ExecutionOptions.transactional_batch().transactional is True

    def test_options_are_frozen(self):
        options = ExecutionOptions()

        with pytest.raises(ValidationError):
            options.max_rows = 5

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError):
            ExecutionOptions(max_rows=-1)


class TestPaginationOptions:

    def test_offset(self):
        assert PaginationOptions(page_number=3, page_size=25).offset == 50

    def test_page_size_bounded_by_max(self):
        with pytest.raises(ValidationError, match="Page size cannot exceed 100"):
            PaginationOptions(page_size=101, max_page_size=100)

    def test_page_number_is_one_based(self):
        with pytest.raises(ValidationError):
            PaginationOptions(page_number=0)

    def test_sort_column_must_be_identifier(self):
        with pytest.raises(ValidationError):
            PaginationOptions(sort_column="id; DROP TABLE users")

    def test_presets(self):
        assert PaginationOptions.small_dataset().page_size == 50
        assert PaginationOptions.large_dataset().page_size == 1000
        sorted_options = PaginationOptions.with_sorting("created_at", SortDirection.DESC)
        assert sorted_options.sort_column == "created_at"
        assert sorted_options.sort_direction == SortDirection.DESC


class TestPaginatedResult:
    """Test derived pagination values."""

    def test_middle_page(self):
        page = page_of(range(11, 21), total=35, page_number=2, page_size=10)

        assert page.total_pages == 4
        assert page.has_next and page.has_previous
        assert page.next_page_number == 3
        assert page.previous_page_number == 1
        assert page.first_record == 11
        assert page.last_record == 20
        assert page.summary == "Showing 11-20 of 35 records (Page 2 of 4)"

    def test_exact_multiple(self):
        page = page_of(range(21, 31), total=30, page_number=3, page_size=10)

        assert page.total_pages == 3
        assert page.is_last_page is True
        assert page.next_page_number is None

    def test_empty(self):
        page = PaginatedResult.empty(page_number=1, page_size=10)

        assert page.success is True
        assert page.total_pages == 0
        assert page.rows == []
        assert page.first_record == 0
        assert page.last_record == 0
        assert page.has_next is False
        assert page.summary == "No records found"

    def test_error(self):
        page = PaginatedResult.error("Count query failed: boom", page_number=2, page_size=10)

        assert page.success is False
        assert page.message == "Count query failed: boom"
        assert page.rows == []


def test_execute_result_to_dict():
    result = ExecuteResult(sql="SELECT 1", success=True, rows=[["1"]], duration_ms=1.234)

    data = result.to_dict()

    assert data['rows'] == [["1"]]
    assert data['duration_ms'] == 1.23
    assert data['from_cache'] is False
