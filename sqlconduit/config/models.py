"""Pydantic models for SQL Conduit configuration."""

from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ESSENTIAL_DIALECTS = ["MYSQL", "POSTGRESQL", "SQLITE"]


class ConnectionDescriptor(BaseModel):
    """Identifies one logical connection target.

    Descriptors are supplied by the caller and never owned by the engine; the
    engine only derives cache and health keys from them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    dialect: str = Field(description="Database type identifier, e.g. MYSQL")
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    credential: Optional[str] = Field(default=None, repr=False, description="Opaque credential")
    alias: Optional[str] = None
    path: Optional[str] = None  # For file based databases
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('dialect')
    def normalize_dialect(cls, v):
        """Upper-case and strip the dialect identifier."""
        normalized = (v or "").strip().upper()
        if not normalized:
            raise ValueError("dialect must not be blank")
        return normalized

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @model_validator(mode='after')
    def validate_file_database(self):
        """File based dialects need a path or a database name."""
        if self.dialect == "SQLITE" and not (self.path or self.database):
            raise ValueError("SQLite connections require a 'path' or 'database' field")
        return self

    @property
    def file_path(self) -> Optional[str]:
        """Database file for file based dialects."""
        return self.path or self.database

    @property
    def connection_key(self) -> str:
        """Deterministic key used for health records and pooled engines."""
        return f"{self.dialect}_{self.host or ''}_{self.port or ''}_{self.database or self.path or ''}"

    @property
    def display_name(self) -> str:
        return self.alias or self.connection_key


class RegistrySettings(BaseModel):
    """Dialect registry settings."""
    entry_point_group: str = Field(default="sqlconduit.dialects", description="Entry point group scanned for plugins")
    include_builtin: bool = Field(default=True, description="Register the bundled dialect plugins")
    essential_dialects: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ESSENTIAL_DIALECTS),
        description="Dialects whose absence is reported after loading",
    )

    @field_validator('essential_dialects')
    def normalize_essentials(cls, v):
        return [item.strip().upper() for item in v if item and item.strip()]


class PoolSettings(BaseModel):
    """Connection pool settings applied to every engine."""
    pool_size: int = Field(default=5, ge=1, le=100, description="Connections kept open per target")
    max_overflow: int = Field(default=10, ge=0, le=100, description="Connections allowed beyond pool_size")
    pool_timeout: float = Field(default=30.0, gt=0, le=3600, description="Seconds to wait for a free connection")
    pool_recycle: int = Field(default=3600, ge=60, le=86400, description="Connection recycle time in seconds")
    pool_pre_ping: bool = Field(default=True, description="Validate connections before use")
    connect_timeout: int = Field(default=10, ge=1, le=600, description="Driver connect timeout in seconds")


class ExecutionSettings(BaseModel):
    """Execution engine settings."""
    worker_count: int = Field(default=10, ge=1, le=256, description="Async execution workers")
    queue_capacity: int = Field(default=100, ge=1, le=100000, description="Pending async submissions before callers block")
    cache_ttl_seconds: int = Field(default=1800, ge=1, description="Query result cache TTL")
    cache_max_entries: int = Field(default=1000, ge=1, description="Query result cache capacity")
    shutdown_timeout: float = Field(default=60.0, ge=0, description="Seconds to wait for workers on shutdown")
    index_hints: Dict[str, str] = Field(
        default_factory=dict,
        description="Table name to index name map used by the index hint optimizer",
    )


class HealthSettings(BaseModel):
    """Health monitor settings."""
    check_interval_seconds: int = Field(default=300, ge=1, description="Period of the monitoring sweep")
    slow_threshold_ms: float = Field(default=5000.0, gt=0, description="Latency above which a connection is SLOW")
    history_size: int = Field(default=10, ge=1, le=1000, description="Results kept per health record")
    sweep_timeout_seconds: float = Field(default=30.0, gt=0, description="Aggregate wait for one sweep")
    connect_timeout_seconds: int = Field(default=10, ge=1, description="Connect timeout used by probes")
    recovery_attempts: int = Field(default=3, ge=1, le=20)
    recovery_backoff_seconds: float = Field(default=1.0, ge=0)
    stale_after_hours: float = Field(default=24.0, gt=0, description="Retention window for unmonitored records")
    cleanup_interval_seconds: int = Field(default=3600, ge=1, description="Period of the cleanup job")
    max_workers: int = Field(default=10, ge=1, le=256)


class DiscoverySettings(BaseModel):
    """Schema discovery settings."""
    cache_ttl_seconds: int = Field(default=3600, ge=1, description="Schema cache TTL")
    max_tables: int = Field(default=1000, ge=1, description="Tables returned per schema")
    max_columns: int = Field(default=500, ge=1, description="Columns returned per table")
    async_database_limit: int = Field(default=5, ge=1, description="Databases expanded by async discovery")
    max_workers: int = Field(default=4, ge=1, le=64)


class ConduitConfig(BaseModel):
    """Main configuration model for SQL Conduit."""
    connections: Dict[str, ConnectionDescriptor] = Field(default_factory=dict)
    default_connection: Optional[str] = None
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    pool: PoolSettings = Field(default_factory=PoolSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)

    @model_validator(mode='before')
    @classmethod
    def apply_connection_aliases(cls, data: Any) -> Any:
        """Default each connection's alias to its configuration name."""
        if isinstance(data, dict) and isinstance(data.get('connections'), dict):
            connections = {}
            for name, value in data['connections'].items():
                if isinstance(value, dict) and not value.get('alias'):
                    value = {**value, 'alias': name}
                connections[name] = value
            data = {**data, 'connections': connections}
        return data

    @model_validator(mode='after')
    def validate_default_connection(self):
        """Ensure default_connection exists in connections."""
        if self.default_connection and self.default_connection not in self.connections:
            raise ValueError(f"default_connection '{self.default_connection}' not found in connections")
        if not self.default_connection and self.connections:
            self.default_connection = next(iter(self.connections))
        return self

    def get_connection(self, name: Optional[str] = None) -> ConnectionDescriptor:
        """Look up a named connection, falling back to the default one.

        Raises:
            KeyError: If the connection is not configured.
        """
        key = name or self.default_connection
        if not key or key not in self.connections:
            raise KeyError(f"Connection '{key}' not found. Available: {list(self.connections)}")
        return self.connections[key]


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="SQLCONDUIT_", case_sensitive=False)
