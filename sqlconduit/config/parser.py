"""Configuration parser for SQL Conduit."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from sqlconduit.config.models import ConduitConfig, EnvironmentSettings
from sqlconduit.exceptions import ConfigurationError


class ConfigParser:
    """Configuration parser with environment variable interpolation."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')

    def __init__(self, env_settings: Optional[EnvironmentSettings] = None) -> None:
        """Initialize the configuration parser."""
        self.env_settings = env_settings or EnvironmentSettings()

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> ConduitConfig:
        """Load and validate configuration from YAML file.

        Args:
            config_path: Path to configuration file. If None, looks for default locations.

        Returns:
            Validated ConduitConfig instance.

        Raises:
            ConfigurationError: If configuration is invalid or file not found.
        """
        config_file = self._find_config_file(config_path)

        try:
            with open(config_file, 'r', encoding='utf-8') as file:
                raw_config = yaml.safe_load(file)

            if not raw_config:
                raise ConfigurationError(f"Configuration file '{config_file}' is empty")
            if not isinstance(raw_config, dict):
                raise ConfigurationError(f"Configuration file '{config_file}' must contain a mapping")

            processed_config = self._process_env_vars(raw_config)

            if 'include' in processed_config:
                processed_config = self._process_includes(processed_config, config_file)

            return ConduitConfig(**processed_config)

        except ConfigurationError:
            raise
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file '{config_file}' not found")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in '{config_file}': {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

    def _find_config_file(self, config_path: Optional[Union[str, Path]]) -> Path:
        """Find configuration file in default locations.

        Args:
            config_path: Explicit path to configuration file.

        Returns:
            Path to configuration file.

        Raises:
            ConfigurationError: If no configuration file is found.
        """
        if config_path:
            path = Path(config_path)
            if path.exists():
                return path
            raise ConfigurationError(f"Configuration file '{config_path}' not found")

        if self.env_settings.config_file:
            path = Path(self.env_settings.config_file)
            if path.exists():
                return path

        default_locations = [
            Path.cwd() / "sqlconduit.yaml",
            Path.cwd() / "sqlconduit.yml",
            Path.cwd() / "config" / "sqlconduit.yaml",
        ]

        for location in default_locations:
            if location.exists():
                return location

        raise ConfigurationError(
            f"No configuration file found in default locations: {[str(p) for p in default_locations]}"
        )

    def _process_env_vars(self, config: Any) -> Any:
        """Recursively process environment variables in configuration."""
        if isinstance(config, dict):
            return {key: self._process_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._process_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_vars(config)
        else:
            return config

    def _substitute_env_vars(self, value: str) -> str:
        """Substitute environment variables in a string.

        Args:
            value: String potentially containing environment variables.

        Returns:
            String with environment variables substituted.

        Raises:
            ConfigurationError: If required environment variable is not set.
        """
        def replace_var(match):
            var_expr = match.group(1)

            # ${VAR:-default}
            if ':-' in var_expr:
                var_name, default = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default.strip())

            var_name = var_expr.strip()
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(f"Required environment variable '{var_name}' is not set")
            return env_value

        return self.ENV_VAR_PATTERN.sub(replace_var, value)

    def _process_includes(self, config: Dict[str, Any], base_path: Union[str, Path]) -> Dict[str, Any]:
        """Process include directives in configuration.

        Included files have lower priority than the including file.
        """
        if 'include' not in config:
            return config

        base_dir = Path(base_path).parent
        includes = config.pop('include')

        if not isinstance(includes, list):
            includes = [includes]

        for include_file in includes:
            include_path = base_dir / include_file

            try:
                with open(include_path, 'r', encoding='utf-8') as file:
                    included_config = yaml.safe_load(file)

                if included_config:
                    included_config = self._process_env_vars(included_config)
                    config = self._merge_configs(included_config, config)

            except FileNotFoundError:
                raise ConfigurationError(f"Included file '{include_path}' not found")
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in included file '{include_path}': {e}")

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge two configuration dictionaries.

        Args:
            base: Base configuration (lower priority).
            override: Override configuration (higher priority).

        Returns:
            Merged configuration.
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def create_sample_config(self, output_path: Union[str, Path]) -> None:
        """Create a sample configuration file.

        Args:
            output_path: Path where to create the sample configuration.
        """
        sample_config = {
            'connections': {
                'warehouse': {
                    'dialect': 'postgresql',
                    'host': 'localhost',
                    'port': 5432,
                    'database': 'warehouse',
                    'user': 'analyst',
                    'credential': '${WAREHOUSE_PASSWORD:-changeme}',
                },
                'local': {
                    'dialect': 'sqlite',
                    'path': './local.db',
                },
            },
            'default_connection': 'local',
            'registry': {
                'essential_dialects': ['MYSQL', 'POSTGRESQL', 'SQLITE'],
            },
            'pool': {
                'pool_size': 5,
                'max_overflow': 10,
                'pool_timeout': 30,
            },
            'execution': {
                'worker_count': 10,
                'queue_capacity': 100,
                'cache_ttl_seconds': 1800,
                'cache_max_entries': 1000,
            },
            'health': {
                'check_interval_seconds': 300,
                'slow_threshold_ms': 5000,
                'stale_after_hours': 24,
            },
            'discovery': {
                'cache_ttl_seconds': 3600,
                'max_tables': 1000,
                'max_columns': 500,
            },
        }

        with open(output_path, 'w', encoding='utf-8') as file:
            yaml.safe_dump(sample_config, file, default_flow_style=False, sort_keys=False)


def load_config(config_path: Optional[Union[str, Path]] = None) -> ConduitConfig:
    """Load a configuration file with a fresh parser.

    Args:
        config_path: Path to configuration file.

    Returns:
        Validated ConduitConfig instance.
    """
    return ConfigParser().load_config(config_path)


def create_sample_config(output_path: Union[str, Path]) -> None:
    """Create a sample configuration file."""
    ConfigParser().create_sample_config(output_path)
