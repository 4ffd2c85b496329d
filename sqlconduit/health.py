"""Connection health probing, rolling health history and automated recovery."""

import logging
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.engine import Connection

from sqlconduit.config.models import ConnectionDescriptor, HealthSettings
from sqlconduit.pool import ConnectionPool
from sqlconduit.registry import DialectRegistry
from sqlconduit.scheduling import PeriodicScheduler

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Connection health states, derived fresh on every probe."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    SLOW = "slow"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of one health probe."""
    connection_key: str
    status: HealthStatus
    can_connect: bool = False
    can_execute_query: bool = False
    can_access_metadata: bool = False
    response_time_ms: float = 0.0
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'connection_key': self.connection_key,
            'status': self.status.value,
            'can_connect': self.can_connect,
            'can_execute_query': self.can_execute_query,
            'can_access_metadata': self.can_access_metadata,
            'response_time_ms': round(self.response_time_ms, 2),
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'timestamp': self.timestamp.isoformat(),
        }


class HealthRecord:
    """Rolling health state of one connection.

    Appending to the history and updating the counters happen under the
    record's own lock, so racing probes for the same key never lose counts.
    """

    def __init__(self, descriptor: ConnectionDescriptor, history_size: int = 10,
                 created_at: Optional[datetime] = None):
        self.descriptor = descriptor
        self.connection_key = descriptor.connection_key
        self.monitored = False
        self.created_at = created_at or datetime.now()
        self.last_check_time: Optional[datetime] = None
        self.last_result: Optional[HealthCheckResult] = None
        self.total_checks = 0
        self.successful_checks = 0
        self.average_response_time_ms = 0.0
        self._history: Deque[HealthCheckResult] = deque(maxlen=history_size)
        self._lock = Lock()

    def record(self, result: HealthCheckResult) -> None:
        with self._lock:
            self.last_result = result
            self.last_check_time = result.timestamp
            self._history.append(result)
            self.total_checks += 1
            if result.status == HealthStatus.HEALTHY:
                self.successful_checks += 1
            # Incremental mean
            self.average_response_time_ms += (
                result.response_time_ms - self.average_response_time_ms
            ) / self.total_checks

    @property
    def history(self) -> List[HealthCheckResult]:
        """Most recent results, oldest first."""
        with self._lock:
            return list(self._history)

    @property
    def success_rate(self) -> float:
        with self._lock:
            return self.successful_checks / self.total_checks if self.total_checks else 0.0

    @property
    def status(self) -> HealthStatus:
        result = self.last_result
        return result.status if result is not None else HealthStatus.UNKNOWN

    def last_activity(self) -> datetime:
        return self.last_check_time or self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'connection_key': self.connection_key,
            'alias': self.descriptor.alias,
            'monitored': self.monitored,
            'status': self.status.value,
            'last_check_time': self.last_check_time.isoformat() if self.last_check_time else None,
            'total_checks': self.total_checks,
            'successful_checks': self.successful_checks,
            'success_rate': self.success_rate,
            'average_response_time_ms': round(self.average_response_time_ms, 2),
        }


class HealthProbe:
    """Opens a fresh connection and runs the query and metadata probes."""

    def __init__(self, pool: ConnectionPool, registry: DialectRegistry, connect_timeout: int = 10):
        self.pool = pool
        self.registry = registry
        self.connect_timeout = connect_timeout

    def connect(self, descriptor: ConnectionDescriptor) -> Connection:
        engine = self.pool.get_probe_engine(descriptor, self.connect_timeout)
        return engine.connect()

    def run_query(self, connection: Connection, descriptor: ConnectionDescriptor) -> bool:
        plugin = self.registry.resolve(descriptor.dialect)
        connection.exec_driver_sql(plugin.probe_query).fetchall()
        return True

    def read_metadata(self, connection: Connection, descriptor: ConnectionDescriptor) -> bool:
        inspect(connection).get_schema_names()
        return True


class HealthMonitor:
    """Probes connections, keeps their health history and drives recovery."""

    def __init__(
        self,
        probe: HealthProbe,
        settings: Optional[HealthSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
        timer: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the monitor.

        Args:
            probe: Executes the individual connect/query/metadata probes.
            settings: Health settings, defaults when omitted.
            clock: Wall clock used for timestamps and stale record cleanup.
            timer: Monotonic seconds counter used to measure probe latency.
            sleep: Used for recovery backoff.
        """
        self.probe = probe
        self.settings = settings or HealthSettings()
        self._clock = clock
        self._timer = timer
        self._sleep = sleep
        self._records: Dict[str, HealthRecord] = {}
        self._records_lock = Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = Lock()
        self._scheduler = PeriodicScheduler("HealthMonitor")

    def _get_or_create_record(self, descriptor: ConnectionDescriptor) -> HealthRecord:
        key = descriptor.connection_key
        with self._records_lock:
            record = self._records.get(key)
            if record is None:
                record = HealthRecord(descriptor, self.settings.history_size, created_at=self._clock())
                self._records[key] = record
            return record

    def check_connection_health(self, descriptor: ConnectionDescriptor) -> HealthCheckResult:
        """Probe a connection synchronously and record the result.

        Returns:
            The probe result. Probe failures are reported in the result and
            never raised.
        """
        key = descriptor.connection_key
        errors: List[str] = []
        warnings: List[str] = []
        can_connect = can_query = can_metadata = False
        started = self._timer()

        try:
            try:
                connection = self.probe.connect(descriptor)
            except Exception as e:
                connection = None
                errors.append(f"Unable to establish connection: {e}")

            if connection is None:
                if not errors:
                    errors.append("Unable to establish connection")
                status = HealthStatus.UNHEALTHY
            else:
                can_connect = True
                try:
                    can_query = self._run_step("Query probe", self.probe.run_query, connection, descriptor, errors)
                    can_metadata = self._run_step(
                        "Metadata probe", self.probe.read_metadata, connection, descriptor, errors
                    )
                finally:
                    self._close_quietly(connection, key)
                status = HealthStatus.HEALTHY if can_query and can_metadata else HealthStatus.DEGRADED

            elapsed_ms = (self._timer() - started) * 1000
            if can_connect and elapsed_ms > self.settings.slow_threshold_ms:
                status = HealthStatus.SLOW
                warnings.append(f"High latency detected: {elapsed_ms:.0f}ms")

        except Exception as e:
            elapsed_ms = (self._timer() - started) * 1000
            status = HealthStatus.UNHEALTHY
            errors.append(str(e))

        result = HealthCheckResult(
            connection_key=key,
            status=status,
            can_connect=can_connect,
            can_execute_query=can_query,
            can_access_metadata=can_metadata,
            response_time_ms=elapsed_ms,
            errors=tuple(errors),
            warnings=tuple(warnings),
            timestamp=self._clock(),
        )
        self._get_or_create_record(descriptor).record(result)

        log = logger.debug if result.is_healthy else logger.warning
        log(f"Health check for {descriptor.display_name}: {status.value.upper()} ({elapsed_ms:.0f}ms)")
        return result

    def _run_step(self, label: str, step: Callable[..., Any], connection: Any,
                  descriptor: ConnectionDescriptor, errors: List[str]) -> bool:
        try:
            if step(connection, descriptor) is False:
                errors.append(f"{label} failed")
                return False
            return True
        except Exception as e:
            errors.append(f"{label} failed: {e}")
            return False

    def _close_quietly(self, connection: Any, key: str) -> None:
        try:
            connection.close()
        except Exception as e:
            logger.debug(f"Error closing probe connection for {key}: {e}")

    def check_health_async(self, descriptor: ConnectionDescriptor) -> "Future[HealthCheckResult]":
        """Run ``check_connection_health`` on the monitor's worker pool."""
        return self._get_executor().submit(self.check_connection_health, descriptor)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.max_workers,
                    thread_name_prefix="HealthCheck",
                )
            return self._executor

    def is_connection_healthy(self, connection_key: str) -> bool:
        """True when the last recorded result for the key is HEALTHY."""
        record = self._records.get(connection_key)
        return record is not None and record.status == HealthStatus.HEALTHY

    def get_connection_health(self, connection_key: str) -> Optional[HealthRecord]:
        return self._records.get(connection_key)

    def all_connections_health(self) -> Dict[str, HealthRecord]:
        with self._records_lock:
            return dict(self._records)

    def start_monitoring(self, descriptor: ConnectionDescriptor) -> HealthRecord:
        """Include a connection in the periodic sweep."""
        record = self._get_or_create_record(descriptor)
        record.monitored = True
        logger.info(f"Started health monitoring for {descriptor.display_name}")
        return record

    def stop_monitoring(self, connection_key: str) -> bool:
        """Exclude a connection from the periodic sweep.

        Returns:
            False when the key has no health record.
        """
        record = self._records.get(connection_key)
        if record is None:
            return False
        record.monitored = False
        logger.info(f"Stopped health monitoring for {connection_key}")
        return True

    def run_periodic_check(self) -> Dict[str, HealthCheckResult]:
        """Probe every monitored connection concurrently.

        Waits at most ``sweep_timeout_seconds`` in total. Probes still running
        after that are logged and left to finish on their own.

        Returns:
            Results of the probes that finished in time, by connection key.
        """
        with self._records_lock:
            targets = [record.descriptor for record in self._records.values() if record.monitored]
        if not targets:
            return {}

        logger.debug(f"Running health sweep over {len(targets)} connections")
        executor = ThreadPoolExecutor(
            max_workers=min(len(targets), self.settings.max_workers),
            thread_name_prefix="HealthSweep",
        )
        results: Dict[str, HealthCheckResult] = {}
        try:
            futures = {executor.submit(self.check_connection_health, target): target for target in targets}
            done, not_done = wait(futures, timeout=self.settings.sweep_timeout_seconds)

            for future in done:
                target = futures[future]
                try:
                    results[target.connection_key] = future.result()
                except Exception as e:
                    logger.error(f"Health check for {target.display_name} failed: {e}")

            for future in not_done:
                logger.warning(
                    f"Health check for {futures[future].display_name} did not finish within "
                    f"{self.settings.sweep_timeout_seconds}s"
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def attempt_connection_recovery(self, descriptor: ConnectionDescriptor) -> bool:
        """Re-probe a connection with linear backoff until it is HEALTHY.

        Sleeps ``attempt * recovery_backoff_seconds`` before each attempt.

        Returns:
            True as soon as a probe reports HEALTHY, False after the last attempt.
        """
        attempts = self.settings.recovery_attempts
        for attempt in range(1, attempts + 1):
            self._sleep(attempt * self.settings.recovery_backoff_seconds)
            result = self.check_connection_health(descriptor)
            if result.status == HealthStatus.HEALTHY:
                logger.info(f"Connection {descriptor.display_name} recovered on attempt {attempt}")
                return True
            logger.warning(
                f"Recovery attempt {attempt}/{attempts} for {descriptor.display_name}: {result.status.value}"
            )

        logger.error(f"Connection recovery exhausted after {attempts} attempts for {descriptor.display_name}")
        return False

    def cleanup_stale_records(self) -> int:
        """Drop records that are unmonitored and not checked within the retention window.

        Returns:
            Number of records removed.
        """
        cutoff = self._clock() - timedelta(hours=self.settings.stale_after_hours)
        with self._records_lock:
            stale = [
                key for key, record in self._records.items()
                if not record.monitored and record.last_activity() < cutoff
            ]
            for key in stale:
                del self._records[key]

        if stale:
            logger.info(f"Removed {len(stale)} stale health records")
        return len(stale)

    def start(self) -> None:
        """Start the periodic health sweep."""
        if self._scheduler.running:
            return
        self._scheduler.every(self.settings.check_interval_seconds, self.run_periodic_check, "health-sweep")
        self._scheduler.start()

    def stop(self) -> None:
        """Stop the periodic sweep and the async worker pool."""
        self._scheduler.stop()
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
