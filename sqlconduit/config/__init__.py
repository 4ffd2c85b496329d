"""Configuration management for SQL Conduit."""

from sqlconduit.config.models import (
    ConduitConfig,
    ConnectionDescriptor,
    DiscoverySettings,
    EnvironmentSettings,
    ExecutionSettings,
    HealthSettings,
    PoolSettings,
    RegistrySettings,
)
from sqlconduit.config.parser import (
    ConfigParser,
    create_sample_config,
    load_config,
)

__all__ = [
    # Models
    "ConduitConfig",
    "ConnectionDescriptor",
    "DiscoverySettings",
    "EnvironmentSettings",
    "ExecutionSettings",
    "HealthSettings",
    "PoolSettings",
    "RegistrySettings",
    # Parser
    "ConfigParser",
    "create_sample_config",
    "load_config",
]
