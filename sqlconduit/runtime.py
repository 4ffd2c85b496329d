"""Process-scoped container wiring the registry, pool, discovery, health and execution."""

import logging
from typing import Any, Dict, Optional

from sqlconduit.config.models import ConduitConfig
from sqlconduit.discovery import SchemaDiscovery
from sqlconduit.execution.executor import SQLExecutor
from sqlconduit.health import HealthMonitor, HealthProbe
from sqlconduit.pool import ConnectionPool, CredentialStore, EnvironmentCredentialStore
from sqlconduit.registry import DialectRegistry
from sqlconduit.scheduling import PeriodicScheduler

logger = logging.getLogger(__name__)


class ConduitRuntime:
    """Owns one instance of every engine component.

    Build it once at startup and hand it to consumers instead of relying on
    module level singletons.
    """

    def __init__(
        self,
        config: ConduitConfig,
        registry: DialectRegistry,
        pool: ConnectionPool,
        discovery: SchemaDiscovery,
        health: HealthMonitor,
        executor: SQLExecutor,
    ):
        self.config = config
        self.registry = registry
        self.pool = pool
        self.discovery = discovery
        self.health = health
        self.executor = executor
        self._cleanup_scheduler = PeriodicScheduler("ConduitCleanup")
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: Optional[ConduitConfig] = None,
        credential_store: Optional[CredentialStore] = None,
        registry: Optional[DialectRegistry] = None,
    ) -> "ConduitRuntime":
        """Build every component from configuration.

        Args:
            config: Configuration, defaults when omitted.
            credential_store: Password source, environment variables by default.
            registry: Pre-loaded registry to use instead of loading one.
        """
        config = config or ConduitConfig()
        registry = registry or DialectRegistry.from_settings(config.registry)
        pool = ConnectionPool(registry, config.pool, credential_store or EnvironmentCredentialStore())
        discovery = SchemaDiscovery(pool, registry, config.discovery)
        probe = HealthProbe(pool, registry, connect_timeout=config.health.connect_timeout_seconds)
        health = HealthMonitor(probe, config.health)
        executor = SQLExecutor(pool, config.execution)
        return cls(config, registry, pool, discovery, health, executor)

    def start(self) -> None:
        """Start the health sweep and the cleanup job."""
        if self._started:
            return
        self.health.start()
        self._cleanup_scheduler.every(self.config.health.cleanup_interval_seconds, self.run_cleanup, "cleanup")
        self._cleanup_scheduler.start()
        self._started = True
        logger.info("SQL Conduit runtime started")

    def run_cleanup(self) -> Dict[str, int]:
        """Drop stale health records and expired cache entries.

        Returns:
            Number of removed items per store.
        """
        removed = {
            'health_records': self.health.cleanup_stale_records(),
            'schema_cache': self.discovery.clean_expired_cache(),
            'query_cache': self.executor.sweep_cache(),
        }
        logger.debug(f"Cleanup removed {removed}")
        return removed

    def shutdown(self) -> None:
        """Stop schedulers and worker pools and dispose all engines."""
        self._cleanup_scheduler.stop()
        self.health.stop()
        self.executor.shutdown()
        self.discovery.shutdown()
        self.pool.dispose()
        self._started = False
        logger.info("SQL Conduit runtime shut down")

    def statistics(self) -> Dict[str, Any]:
        return {
            'registry': self.registry.statistics(),
            'query_cache': self.executor.cache_statistics(),
            'schema_cache_entries': self.discovery.cache_size,
            'health_records': len(self.health.all_connections_health()),
            'pools': self.pool.get_status(),
        }

    def __enter__(self) -> "ConduitRuntime":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
