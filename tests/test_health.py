"""Tests for connection health monitoring."""

import itertools
from unittest.mock import Mock

import pytest

from sqlconduit.config.models import ConnectionDescriptor, HealthSettings
from sqlconduit.health import HealthCheckResult, HealthMonitor, HealthProbe, HealthRecord, HealthStatus


def constant_timer():
    return itertools.repeat(0.0).__next__


@pytest.fixture
def descriptor():
    return ConnectionDescriptor(dialect="postgresql", host="db.internal", port=5432, database="sales", alias="sales")


@pytest.fixture
def probe():
    probe = Mock()
    probe.run_query.return_value = True
    probe.read_metadata.return_value = True
    return probe


def make_monitor(probe, clock, settings=None, timer=None, sleep=None):
    return HealthMonitor(
        probe,
        settings or HealthSettings(),
        clock=clock,
        timer=timer or constant_timer(),
        sleep=sleep or Mock(),
    )


class TestHealthCheck:
    """Test single health checks."""

    def test_healthy(self, probe, descriptor, fake_clock):
        monitor = make_monitor(probe, fake_clock)

        result = monitor.check_connection_health(descriptor)

        assert result.status == HealthStatus.HEALTHY
        assert result.can_connect and result.can_execute_query and result.can_access_metadata
        assert result.errors == ()
        assert monitor.is_connection_healthy(descriptor.connection_key)
        probe.connect.return_value.close.assert_called_once()

    def test_slow_when_latency_exceeds_threshold(self, probe, descriptor, fake_clock):
        timer = Mock(side_effect=[0.0, 6.0])
        monitor = make_monitor(probe, fake_clock, timer=timer)

        result = monitor.check_connection_health(descriptor)

        assert result.status == HealthStatus.SLOW
        assert result.response_time_ms == pytest.approx(6000.0)
        assert "High latency detected: 6000ms" in result.warnings
        assert timer.call_count == 2

    def test_connect_failure_is_unhealthy(self, probe, descriptor, fake_clock):
        probe.connect.side_effect = ConnectionError("connection refused")
        monitor = make_monitor(probe, fake_clock, timer=Mock(side_effect=[0.0, 9.0]))

        result = monitor.check_connection_health(descriptor)

        assert result.status == HealthStatus.UNHEALTHY
        assert result.can_connect is False
        assert result.errors == ("Unable to establish connection: connection refused",)
        assert result.warnings == ()
        probe.run_query.assert_not_called()

    def test_metadata_failure_is_degraded(self, probe, descriptor, fake_clock):
        probe.read_metadata.side_effect = RuntimeError("permission denied")
        monitor = make_monitor(probe, fake_clock)

        result = monitor.check_connection_health(descriptor)

        assert result.status == HealthStatus.DEGRADED
        assert result.can_execute_query is True
        assert result.can_access_metadata is False
        assert "Metadata probe failed: permission denied" in result.errors

    def test_slow_degraded_connection_reports_slow(self, probe, descriptor, fake_clock):
        probe.read_metadata.side_effect = RuntimeError("permission denied")
        monitor = make_monitor(probe, fake_clock, timer=Mock(side_effect=[0.0, 6.0]))

        result = monitor.check_connection_health(descriptor)

        assert result.status == HealthStatus.SLOW
        assert "Metadata probe failed: permission denied" in result.errors
        assert "High latency detected: 6000ms" in result.warnings

    def test_query_returning_false_is_degraded(self, probe, descriptor, fake_clock):
        probe.run_query.return_value = False
        monitor = make_monitor(probe, fake_clock)

        result = monitor.check_connection_health(descriptor)

        assert result.status == HealthStatus.DEGRADED
        assert "Query probe failed" in result.errors

    def test_to_dict(self, probe, descriptor, fake_clock):
        monitor = make_monitor(probe, fake_clock)

        data = monitor.check_connection_health(descriptor).to_dict()

        assert data['status'] == "healthy"
        assert data['connection_key'] == descriptor.connection_key
        assert data['timestamp'] == fake_clock.now.isoformat()

    def test_check_health_async(self, probe, descriptor, fake_clock):
        monitor = make_monitor(probe, fake_clock)
        try:
            result = monitor.check_health_async(descriptor).result(timeout=5)
        finally:
            monitor.stop()

        assert result.status == HealthStatus.HEALTHY


class TestHealthRecord:

    def test_history_is_bounded(self, probe, descriptor, fake_clock):
        monitor = make_monitor(probe, fake_clock, settings=HealthSettings(history_size=3))

        for _ in range(5):
            monitor.check_connection_health(descriptor)

        record = monitor.get_connection_health(descriptor.connection_key)
        assert len(record.history) == 3
        assert record.total_checks == 5
        assert record.successful_checks == 5

    def test_success_rate_and_average(self, descriptor):
        record = HealthRecord(descriptor)
        key = descriptor.connection_key
        record.record(HealthCheckResult(key, HealthStatus.HEALTHY, response_time_ms=10.0))
        record.record(HealthCheckResult(key, HealthStatus.UNHEALTHY, response_time_ms=30.0))

        assert record.success_rate == 0.5
        assert record.average_response_time_ms == pytest.approx(20.0)
        assert record.status == HealthStatus.UNHEALTHY

    def test_unknown_before_first_check(self, descriptor):
        record = HealthRecord(descriptor)

        assert record.status == HealthStatus.UNKNOWN
        assert record.success_rate == 0.0


class TestRecovery:

    def test_recovers_on_second_attempt(self, probe, descriptor, fake_clock):
        probe.connect.side_effect = [ConnectionError("down"), Mock()]
        sleep = Mock()
        monitor = make_monitor(probe, fake_clock, sleep=sleep)

        recovered = monitor.attempt_connection_recovery(descriptor)

        assert recovered is True
        assert probe.connect.call_count == 2
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_gives_up_after_configured_attempts(self, probe, descriptor, fake_clock):
        probe.connect.side_effect = ConnectionError("down")
        sleep = Mock()
        settings = HealthSettings(recovery_attempts=3, recovery_backoff_seconds=0.5)
        monitor = make_monitor(probe, fake_clock, settings=settings, sleep=sleep)

        recovered = monitor.attempt_connection_recovery(descriptor)

        assert recovered is False
        assert probe.connect.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0, 1.5]


class TestMonitoring:
    """Test monitored sets, sweeps and cleanup."""

    def test_periodic_check_covers_monitored_only(self, probe, fake_clock):
        monitor = make_monitor(probe, fake_clock)
        watched = ConnectionDescriptor(dialect="sqlite", path="/tmp/a.db")
        other = ConnectionDescriptor(dialect="sqlite", path="/tmp/b.db")
        monitor.start_monitoring(watched)
        monitor.check_connection_health(other)

        results = monitor.run_periodic_check()

        assert list(results) == [watched.connection_key]
        assert results[watched.connection_key].status == HealthStatus.HEALTHY

    def test_periodic_check_without_targets(self, probe, fake_clock):
        monitor = make_monitor(probe, fake_clock)

        assert monitor.run_periodic_check() == {}
        probe.connect.assert_not_called()

    def test_stop_monitoring(self, probe, descriptor, fake_clock):
        monitor = make_monitor(probe, fake_clock)
        monitor.start_monitoring(descriptor)

        assert monitor.stop_monitoring(descriptor.connection_key) is True
        assert monitor.stop_monitoring("unknown") is False
        assert monitor.run_periodic_check() == {}

    def test_cleanup_removes_stale_unmonitored_records(self, probe, fake_clock):
        monitor = make_monitor(probe, fake_clock, settings=HealthSettings(stale_after_hours=24))
        stale = ConnectionDescriptor(dialect="sqlite", path="/tmp/stale.db")
        watched = ConnectionDescriptor(dialect="sqlite", path="/tmp/watched.db")
        fresh = ConnectionDescriptor(dialect="sqlite", path="/tmp/fresh.db")
        monitor.check_connection_health(stale)
        monitor.start_monitoring(watched)
        monitor.check_connection_health(watched)

        fake_clock.advance(hours=25)
        monitor.check_connection_health(fresh)
        removed = monitor.cleanup_stale_records()

        assert removed == 1
        assert set(monitor.all_connections_health()) == {watched.connection_key, fresh.connection_key}

    def test_start_registers_sweep_job(self, probe, fake_clock):
        monitor = make_monitor(probe, fake_clock, settings=HealthSettings(check_interval_seconds=120))

        monitor.start()
        try:
            assert [job.interval for job in monitor._scheduler.jobs] == [120]
        finally:
            monitor.stop()


class TestHealthProbe:

    def test_probes_real_sqlite(self, pool, registry, sqlite_descriptor):
        probe = HealthProbe(pool, registry, connect_timeout=5)
        monitor = HealthMonitor(probe)

        result = monitor.check_connection_health(sqlite_descriptor)

        assert result.status == HealthStatus.HEALTHY
