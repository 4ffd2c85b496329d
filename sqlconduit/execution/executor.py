"""SQL execution with caching, optimization, batching, pagination and async dispatch."""

import hashlib
import itertools
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime
from threading import BoundedSemaphore, Lock
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from sqlconduit.cache import TTLCache
from sqlconduit.config.models import ConnectionDescriptor, ExecutionSettings
from sqlconduit.dialects.base import DialectPlugin
from sqlconduit.exceptions import ConduitError, ExecutionFailure, StatementSetupError
from sqlconduit.execution.optimizers import QueryOptimizer, default_optimizers
from sqlconduit.execution.options import ExecutionOptions, PaginationOptions
from sqlconduit.execution.results import (
    BatchResult,
    ColumnHeader,
    ExecuteResult,
    PaginatedResult,
    QueryMetrics,
)
from sqlconduit.pool import ConnectionPool

logger = logging.getLogger(__name__)

# Used when a connection does not carry a dialect plugin
_ANSI_DIALECT = DialectPlugin()


class SQLExecutor:
    """Runs statements on caller supplied DB-API style connections.

    Statement failures never raise: they come back as an unsuccessful
    ``ExecuteResult``. Only setup errors (no cursor, pool exhausted) raise.

    The query cache keys on the exact SQL text and has no invalidation other
    than its TTL and ``clear_cache``, so cached reads may be stale for up to
    ``cache_ttl_seconds``.
    """

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        settings: Optional[ExecutionSettings] = None,
        optimizers: Optional[Sequence[QueryOptimizer]] = None,
        clock: Callable[[], datetime] = datetime.now,
        timer: Callable[[], float] = time.perf_counter,
    ):
        """Initialize the executor.

        Args:
            pool: Pool used by the ``*_on`` helpers that take a descriptor.
            settings: Execution settings, defaults when omitted.
            optimizers: Optimizer chain, the standard chain when omitted.
            clock: Wall clock for cache expiry and metric timestamps.
            timer: Monotonic seconds counter for durations.
        """
        self.pool = pool
        self.settings = settings or ExecutionSettings()
        self.optimizers: List[QueryOptimizer] = (
            list(optimizers) if optimizers is not None else default_optimizers(self.settings.index_hints)
        )
        self._clock = clock
        self._timer = timer
        self._cache: TTLCache[ExecuteResult] = TTLCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            max_entries=self.settings.cache_max_entries,
            clock=clock,
            name="query cache",
        )
        self._metrics: Dict[str, QueryMetrics] = {}
        self._metrics_lock = Lock()
        self._sequence = itertools.count(1)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = Lock()
        self._pending: Set[Future] = set()
        # Running plus queued submissions; submitters block beyond this
        self._slots = BoundedSemaphore(self.settings.worker_count + self.settings.queue_capacity)

    def _generate_query_id(self, sql: str) -> str:
        digest = hashlib.md5(sql.encode('utf-8')).hexdigest()[:12]
        return f"query_{digest}_{int(self._clock().timestamp() * 1000)}_{next(self._sequence)}"

    def execute_advanced(
        self,
        sql: str,
        connection: Any,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecuteResult:
        """Execute one statement with caching and optimization.

        Args:
            sql: Statement text. The cache key is this exact text.
            connection: DB-API style connection owned by the caller for this call.
            options: Execution options, defaults when omitted.

        Returns:
            The statement result, successful or not.

        Raises:
            StatementSetupError: If no cursor can be obtained from the connection.
        """
        options = options or ExecutionOptions()
        query_id = self._generate_query_id(sql)
        started = self._timer()

        if options.cache_enabled:
            cached = self._cache.get(sql)
            if cached is not None:
                result = replace(cached, rows=[list(row) for row in cached.rows], headers=list(cached.headers),
                                 from_cache=True, query_id=query_id)
                logger.debug(f"Query cache hit for {query_id}")
                self._record_metrics(result, options, self._elapsed_ms(started))
                return result

        executed_sql = self._optimize(sql, connection, options) if options.optimization_enabled else sql

        try:
            result = self._execute_statement(sql, executed_sql, connection, options)
        except ExecutionFailure as e:
            logger.warning(f"Statement {query_id} failed: {e.message}")
            result = ExecuteResult.failure(sql, e.message, executed_sql=executed_sql,
                                           duration_ms=self._elapsed_ms(started))
        except StatementSetupError as e:
            failed = ExecuteResult.failure(sql, e.message, executed_sql=executed_sql)
            failed.query_id = query_id
            self._record_metrics(failed, options, self._elapsed_ms(started))
            raise

        result.query_id = query_id
        if result.success and options.cache_enabled:
            cached = replace(result, rows=[list(row) for row in result.rows], headers=list(result.headers))
            self._cache.put(sql, cached)

        self._record_metrics(result, options, result.duration_ms)
        return result

    def _elapsed_ms(self, started: float) -> float:
        return (self._timer() - started) * 1000

    def _optimize(self, sql: str, connection: Any, options: ExecutionOptions) -> str:
        """Run the optimizer chain. Any optimizer error falls back to the original SQL."""
        optimized = sql
        try:
            for optimizer in self.optimizers:
                if optimizer.can_optimize(optimized, connection, options):
                    rewritten = optimizer.optimize(optimized, connection, options)
                    if rewritten != optimized:
                        logger.debug(f"Optimizer '{optimizer.name}' rewrote statement")
                    optimized = rewritten
        except Exception as e:
            logger.warning(f"Query optimization failed, executing original statement: {e}")
            return sql
        return optimized

    def _execute_statement(self, sql: str, executed_sql: str, connection: Any,
                           options: ExecutionOptions) -> ExecuteResult:
        try:
            cursor = connection.cursor()
        except Exception as e:
            raise StatementSetupError(f"Unable to obtain a cursor: {e}", sql=sql) from e

        started = self._timer()
        timeout_applied = False
        try:
            if options.query_timeout > 0:
                timeout_applied = self._apply_statement_timeout(cursor, connection, options.query_timeout)
            if options.fetch_size > 0:
                try:
                    cursor.arraysize = options.fetch_size
                except (AttributeError, TypeError):
                    pass

            try:
                cursor.execute(executed_sql)
                if cursor.description:
                    headers = [ColumnHeader(name=str(column[0]), data_type=self._type_name(column[1]))
                               for column in cursor.description]
                    rows, truncated = self._materialize(cursor, options)
                    return ExecuteResult(
                        sql=sql, success=True, executed_sql=executed_sql, headers=headers, rows=rows,
                        truncated=truncated, duration_ms=self._elapsed_ms(started),
                    )

                rowcount = getattr(cursor, 'rowcount', -1)
                return ExecuteResult(
                    sql=sql, success=True, executed_sql=executed_sql,
                    update_count=rowcount if isinstance(rowcount, int) and rowcount >= 0 else None,
                    duration_ms=self._elapsed_ms(started),
                )
            except Exception as e:
                raise ExecutionFailure(str(e), sql=executed_sql) from e
        finally:
            if timeout_applied:
                self._clear_statement_timeout(cursor, connection)
            try:
                cursor.close()
            except Exception as e:
                logger.debug(f"Error closing cursor: {e}")

    def _apply_statement_timeout(self, cursor: Any, connection: Any, seconds: int) -> bool:
        """Set a per-statement timeout. Returns whether one needs clearing afterwards."""
        dialect = getattr(connection, 'dialect', None)
        if not isinstance(dialect, DialectPlugin):
            return False
        try:
            dialect.apply_statement_timeout(connection, cursor, seconds)
        except Exception as e:
            logger.warning(f"Could not apply {seconds}s statement timeout on {dialect.identifier}: {e}")
            return False
        return True

    def _clear_statement_timeout(self, cursor: Any, connection: Any) -> None:
        # Pooled connections outlive this call, so the limit must not carry over
        dialect = connection.dialect
        try:
            dialect.clear_statement_timeout(connection, cursor)
        except Exception as e:
            logger.warning(f"Could not clear statement timeout on {dialect.identifier}: {e}")

    @staticmethod
    def _type_name(type_code: Any) -> Optional[str]:
        if type_code is None:
            return None
        return getattr(type_code, '__name__', None) or str(type_code)

    def _materialize(self, cursor: Any, options: ExecutionOptions) -> Tuple[List[List[str]], bool]:
        """Fetch rows as text, stopping after ``max_rows``."""
        max_rows = options.max_rows
        batch_size = options.fetch_size or 1000
        rows: List[List[str]] = []

        while True:
            batch = cursor.fetchmany(batch_size)
            if not batch:
                return rows, False
            for row in batch:
                if max_rows and len(rows) >= max_rows:
                    return rows, True
                rows.append([self._to_text(value) for value in row])

    @staticmethod
    def _to_text(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).hex()
        return str(value)

    def _record_metrics(self, result: ExecuteResult, options: ExecutionOptions, duration_ms: float) -> None:
        if not options.collect_metrics or result.query_id is None:
            return
        metrics = QueryMetrics(
            query_id=result.query_id,
            sql=result.sql,
            duration_ms=duration_ms,
            success=result.success,
            timestamp=self._clock(),
            from_cache=result.from_cache,
            row_count=result.row_count,
        )
        with self._metrics_lock:
            self._metrics[metrics.query_id] = metrics

    def execute_async(
        self,
        sql: str,
        connection: Any,
        options: Optional[ExecutionOptions] = None,
    ) -> "Future[ExecuteResult]":
        """Run ``execute_advanced`` on the worker pool.

        Blocks the caller while the pool's bounded queue is full.
        """
        return self._submit(self.execute_advanced, sql, connection, options)

    def execute_async_on(
        self,
        descriptor: ConnectionDescriptor,
        sql: str,
        options: Optional[ExecutionOptions] = None,
    ) -> "Future[ExecuteResult]":
        """Run ``execute_on`` on the worker pool with a connection from the pool."""
        return self._submit(self.execute_on, descriptor, sql, options)

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        self._slots.acquire()
        try:
            future = self._get_executor().submit(fn, *args)
        except Exception:
            self._slots.release()
            raise

        with self._executor_lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        with self._executor_lock:
            self._pending.discard(future)
        self._slots.release()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.worker_count,
                    thread_name_prefix="SQLExecutor",
                )
            return self._executor

    def execute_batch(
        self,
        statements: Sequence[str],
        connection: Any,
        options: Optional[ExecutionOptions] = None,
    ) -> BatchResult:
        """Execute statements in order.

        Non-transactional batches run every statement. Transactional batches
        turn autocommit off, stop and roll back at the first failure, commit
        otherwise, and always restore the original autocommit setting.
        """
        options = options or ExecutionOptions()
        if not options.transactional:
            results = [self.execute_advanced(sql, connection, options) for sql in statements]
            failed = next((index for index, result in enumerate(results) if not result.success), None)
            return BatchResult(
                results=results,
                transactional=False,
                success=failed is None,
                failed_index=failed,
                message=None if failed is None else f"Statement {failed + 1} failed: {results[failed].message}",
            )

        # Cached reads inside an open transaction would be misleading
        statement_options = options.model_copy(update={'cache_enabled': False})
        batch = BatchResult(results=[], transactional=True, success=False)
        original_autocommit = connection.autocommit

        try:
            connection.autocommit = False
            for index, sql in enumerate(statements):
                result = self.execute_advanced(sql, connection, statement_options)
                batch.results.append(result)
                if not result.success:
                    batch.failed_index = index
                    batch.message = f"Statement {index + 1} failed: {result.message}"
                    batch.rolled_back = self._rollback(connection, batch)
                    if batch.rolled_back:
                        batch.message += "; transaction rolled back"
                    break
            else:
                try:
                    connection.commit()
                    batch.committed = True
                    batch.success = True
                    batch.message = f"Committed {len(statements)} statements"
                except Exception as e:
                    logger.error(f"Batch commit failed: {e}")
                    batch.message = f"Commit failed: {e}"
                    batch.rolled_back = self._rollback(connection, batch)
        except Exception:
            self._rollback(connection, batch)
            raise
        finally:
            try:
                connection.autocommit = original_autocommit
            except Exception as e:
                logger.error(f"Failed to restore autocommit to {original_autocommit}: {e}")

        return batch

    def _rollback(self, connection: Any, batch: BatchResult) -> bool:
        try:
            connection.rollback()
            logger.info("Batch transaction rolled back")
            return True
        except Exception as e:
            logger.error(f"Batch rollback failed: {e}")
            batch.message = f"{batch.message or 'Batch failed'}; rollback failed: {e}"
            return False

    def execute_paginated(
        self,
        sql: str,
        connection: Any,
        pagination: Optional[PaginationOptions] = None,
    ) -> PaginatedResult:
        """Execute one page of a statement plus a count of all its rows.

        Returns:
            The page with total count and page count; an error result when the
            count or page query fails.
        """
        pagination = pagination or PaginationOptions()
        dialect = getattr(connection, 'dialect', None)
        if not isinstance(dialect, DialectPlugin):
            dialect = _ANSI_DIALECT

        base_sql = sql.strip().rstrip(';').rstrip()
        page_options = ExecutionOptions(max_rows=0)

        count_result = self.execute_advanced(dialect.count_query(base_sql), connection, page_options)
        if not count_result.success:
            return PaginatedResult.error(
                f"Count query failed: {count_result.message}", pagination.page_number, pagination.page_size
            )

        try:
            total = int(count_result.rows[0][0]) if count_result.rows else 0
        except (ValueError, IndexError) as e:
            return PaginatedResult.error(
                f"Unexpected count result: {e}", pagination.page_number, pagination.page_size
            )

        if total == 0:
            return PaginatedResult.empty(pagination.page_number, pagination.page_size)

        page_sql = base_sql
        if pagination.sort_column:
            page_sql = f"{page_sql} ORDER BY {pagination.sort_column} {pagination.sort_direction.value}"
        page_sql = dialect.paginate(page_sql, pagination.page_size, pagination.offset)

        page_result = self.execute_advanced(page_sql, connection, page_options)
        if not page_result.success:
            return PaginatedResult.error(
                f"Page query failed: {page_result.message}", pagination.page_number, pagination.page_size
            )

        return PaginatedResult(
            execute_result=page_result,
            total_count=total,
            page_number=pagination.page_number,
            page_size=pagination.page_size,
        )

    def _require_pool(self) -> ConnectionPool:
        if self.pool is None:
            raise ConduitError("No connection pool configured for descriptor based execution")
        return self.pool

    def execute_on(self, descriptor: ConnectionDescriptor, sql: str,
                   options: Optional[ExecutionOptions] = None) -> ExecuteResult:
        """Execute on a pooled connection for ``descriptor``.

        Raises:
            PoolExhaustedError: If the pool has no free connection.
        """
        with self._require_pool().connection(descriptor) as connection:
            return self.execute_advanced(sql, connection, options)

    def execute_batch_on(self, descriptor: ConnectionDescriptor, statements: Sequence[str],
                         options: Optional[ExecutionOptions] = None) -> BatchResult:
        with self._require_pool().connection(descriptor) as connection:
            return self.execute_batch(statements, connection, options)

    def execute_paginated_on(self, descriptor: ConnectionDescriptor, sql: str,
                             pagination: Optional[PaginationOptions] = None) -> PaginatedResult:
        with self._require_pool().connection(descriptor) as connection:
            return self.execute_paginated(sql, connection, pagination)

    def get_metrics(self, query_id: str) -> Optional[QueryMetrics]:
        with self._metrics_lock:
            return self._metrics.get(query_id)

    def all_metrics(self) -> List[QueryMetrics]:
        with self._metrics_lock:
            return list(self._metrics.values())

    def clear_metrics(self) -> None:
        with self._metrics_lock:
            self._metrics.clear()
        logger.info("Cleared query metrics")

    def clear_cache(self) -> None:
        self._cache.clear()

    def sweep_cache(self) -> int:
        """Remove expired query cache entries."""
        return self._cache.sweep()

    def cache_statistics(self) -> Dict[str, Any]:
        return self._cache.get_statistics()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Wait for pending async work, then stop the worker pool.

        Args:
            timeout: Seconds to wait for pending work, ``shutdown_timeout`` when None.
        """
        timeout = self.settings.shutdown_timeout if timeout is None else timeout
        with self._executor_lock:
            executor = self._executor
            self._executor = None
            pending = set(self._pending)

        if executor is None:
            return

        if pending:
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                logger.warning(f"{len(not_done)} queued statements did not finish within {timeout}s")
        executor.shutdown(wait=False, cancel_futures=True)
        logger.info("SQL executor shut down")
