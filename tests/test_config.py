"""Tests for configuration models and the YAML parser."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from pydantic import ValidationError

from sqlconduit.config import (
    ConduitConfig,
    ConfigParser,
    ConnectionDescriptor,
    EnvironmentSettings,
    create_sample_config,
    load_config,
)
from sqlconduit.exceptions import ConfigurationError


def write_yaml(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestConnectionDescriptor:
    """Test ConnectionDescriptor validation and derived keys."""

    def test_dialect_is_normalized(self):
        descriptor = ConnectionDescriptor(dialect=" postgresql ", host="db")

        assert descriptor.dialect == "POSTGRESQL"

    def test_blank_dialect_rejected(self):
        with pytest.raises(ValidationError):
            ConnectionDescriptor(dialect="  ")

    @pytest.mark.parametrize("port", [0, 70000])
    def test_port_range(self, port):
        with pytest.raises(ValidationError, match="Port must be between"):
            ConnectionDescriptor(dialect="mysql", host="db", port=port)

    def test_sqlite_requires_path_or_database(self):
        with pytest.raises(ValidationError, match="SQLite connections require"):
            ConnectionDescriptor(dialect="sqlite")

    def test_connection_key(self):
        descriptor = ConnectionDescriptor(dialect="mysql", host="db", port=3306, database="shop")

        assert descriptor.connection_key == "MYSQL_db_3306_shop"
        assert descriptor.display_name == "MYSQL_db_3306_shop"

    def test_credential_hidden_from_repr(self):
        descriptor = ConnectionDescriptor(dialect="mysql", host="db", credential="s3cret")

        assert "s3cret" not in repr(descriptor)

    def test_descriptor_is_frozen(self):
        descriptor = ConnectionDescriptor(dialect="mysql", host="db")

        with pytest.raises(ValidationError):
            descriptor.host = "other"


class TestConduitConfig:

    def test_aliases_default_to_connection_names(self):
        config = ConduitConfig(connections={
            "local": {"dialect": "sqlite", "path": "local.db"},
            "named": {"dialect": "sqlite", "path": "other.db", "alias": "Other"},
        })

        assert config.connections["local"].alias == "local"
        assert config.connections["named"].alias == "Other"

    def test_default_connection_falls_back_to_first(self):
        config = ConduitConfig(connections={"local": {"dialect": "sqlite", "path": "local.db"}})

        assert config.default_connection == "local"
        assert config.get_connection().path == "local.db"

    def test_unknown_default_connection(self):
        with pytest.raises(ValidationError, match="not found in connections"):
            ConduitConfig(
                connections={"local": {"dialect": "sqlite", "path": "local.db"}},
                default_connection="remote",
            )

    def test_get_unknown_connection(self):
        config = ConduitConfig()

        with pytest.raises(KeyError):
            config.get_connection("missing")

    def test_settings_defaults(self):
        config = ConduitConfig()

        assert config.pool.pool_size == 5
        assert config.execution.worker_count == 10
        assert config.execution.queue_capacity == 100
        assert config.execution.cache_ttl_seconds == 1800
        assert config.health.check_interval_seconds == 300
        assert config.health.slow_threshold_ms == 5000
        assert config.health.stale_after_hours == 24
        assert config.discovery.cache_ttl_seconds == 3600
        assert config.discovery.max_tables == 1000
        assert config.discovery.max_columns == 500
        assert config.registry.essential_dialects == ["MYSQL", "POSTGRESQL", "SQLITE"]


class TestConfigParser:
    """Test YAML loading."""

    def test_load_sample_config(self, temp_dir):
        path = temp_dir / "sqlconduit.yaml"
        create_sample_config(path)

        config = load_config(path)

        assert set(config.connections) == {"warehouse", "local"}
        assert config.default_connection == "local"
        assert config.connections["warehouse"].dialect == "POSTGRESQL"

    def test_env_var_substitution(self, temp_dir):
        path = write_yaml(temp_dir / "config.yaml", {
            "connections": {
                "main": {"dialect": "mysql", "host": "${DB_HOST}", "credential": "${DB_PASS:-fallback}"},
            },
        })

        with patch.dict(os.environ, {"DB_HOST": "db.internal"}, clear=False):
            os.environ.pop("DB_PASS", None)
            config = load_config(path)

        assert config.connections["main"].host == "db.internal"
        assert config.connections["main"].credential == "fallback"

    def test_missing_required_env_var(self, temp_dir):
        path = write_yaml(temp_dir / "config.yaml", {
            "connections": {"main": {"dialect": "mysql", "host": "${SQLCONDUIT_TEST_UNSET_HOST}"}},
        })
        os.environ.pop("SQLCONDUIT_TEST_UNSET_HOST", None)

        with pytest.raises(ConfigurationError, match="SQLCONDUIT_TEST_UNSET_HOST"):
            load_config(path)

    def test_includes_have_lower_priority(self, temp_dir):
        write_yaml(temp_dir / "base.yaml", {
            "pool": {"pool_size": 3, "max_overflow": 1},
            "connections": {"base": {"dialect": "sqlite", "path": "base.db"}},
        })
        path = write_yaml(temp_dir / "config.yaml", {
            "include": ["base.yaml"],
            "pool": {"pool_size": 8},
        })

        config = load_config(path)

        assert config.pool.pool_size == 8
        assert config.pool.max_overflow == 1
        assert "base" in config.connections

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(temp_dir / "absent.yaml")

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="is empty"):
            load_config(path)

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "broken.yaml"
        path.write_text("connections: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_validation_error_is_wrapped(self, temp_dir):
        path = write_yaml(temp_dir / "config.yaml", {"pool": {"pool_size": 0}})

        with pytest.raises(ConfigurationError, match="validation failed"):
            load_config(path)

    def test_default_location_lookup(self, temp_dir, monkeypatch):
        create_sample_config(temp_dir / "sqlconduit.yaml")
        monkeypatch.chdir(temp_dir)
        monkeypatch.delenv("SQLCONDUIT_CONFIG_FILE", raising=False)

        config = ConfigParser().load_config()

        assert "local" in config.connections

    def test_config_file_from_environment(self, temp_dir, monkeypatch):
        path = temp_dir / "custom.yaml"
        create_sample_config(path)
        monkeypatch.setenv("SQLCONDUIT_CONFIG_FILE", str(path))
        monkeypatch.chdir(temp_dir)

        config = ConfigParser(EnvironmentSettings()).load_config()

        assert config.default_connection == "local"
