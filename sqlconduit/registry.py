"""Dialect registry resolving database-type identifiers to plugins."""

import importlib.metadata as metadata
import inspect
import logging
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from sqlconduit.config.models import DEFAULT_ESSENTIAL_DIALECTS, RegistrySettings
from sqlconduit.dialects.base import DialectPlugin, DriverConfig
from sqlconduit.exceptions import PluginError, UnsupportedDialectError

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "sqlconduit.dialects"


class DialectRegistry:
    """Discovers dialect plugins and indexes them by identifier.

    The index is a plain dict that is never mutated after it is built. Lookups
    read whatever dict is currently installed, and ``reload`` builds a new one
    before swapping it in, so readers always see a complete index.
    """

    def __init__(
        self,
        entry_point_group: str = ENTRY_POINT_GROUP,
        builtin_plugins: Optional[Iterable[Any]] = None,
        essential_dialects: Optional[Iterable[str]] = None,
    ) -> None:
        """Initialize the registry.

        Args:
            entry_point_group: Entry point group scanned for plugin classes.
            builtin_plugins: Plugin classes or instances registered in addition
                to entry point plugins. Entry point plugins win on conflicts.
            essential_dialects: Identifiers whose absence after loading is
                reported as a warning.
        """
        self._entry_point_group = entry_point_group
        self._builtin_plugins = list(builtin_plugins or [])
        if essential_dialects is None:
            essential_dialects = DEFAULT_ESSENTIAL_DIALECTS
        self._essential = [item.upper() for item in essential_dialects]
        self._index: Dict[str, DialectPlugin] = {}
        self._loaded = False
        self._reload_lock = Lock()

    @classmethod
    def from_settings(cls, settings: RegistrySettings) -> "DialectRegistry":
        """Create and load a registry from configuration."""
        from sqlconduit.dialects import BUILTIN_PLUGINS

        registry = cls(
            entry_point_group=settings.entry_point_group,
            builtin_plugins=BUILTIN_PLUGINS if settings.include_builtin else [],
            essential_dialects=settings.essential_dialects,
        )
        registry.load()
        return registry

    def load(self) -> Dict[str, DialectPlugin]:
        """Discover plugins and install a fresh index.

        Malformed plugins are logged and skipped. Missing essential dialects
        produce a warning only.

        Returns:
            The installed identifier to plugin mapping.
        """
        with self._reload_lock:
            index = self._build_index()
            self._index = index
            self._loaded = True

        missing = [dialect for dialect in self._essential if dialect not in index]
        if missing:
            logger.warning(f"Essential dialect plugins missing: {', '.join(missing)}")

        logger.info(f"Loaded {len(index)} dialect plugins: {', '.join(sorted(index))}")
        return index

    def reload(self) -> Dict[str, DialectPlugin]:
        """Rebuild the index. Concurrent resolvers keep using the old index until the swap."""
        logger.info("Reloading dialect plugins")
        return self.load()

    def _build_index(self) -> Dict[str, DialectPlugin]:
        index: Dict[str, DialectPlugin] = {}

        for entry_point in self._iter_entry_points():
            try:
                plugin = self._instantiate(entry_point.load(), entry_point.name)
            except Exception as exc:
                logger.error(f"Skipping dialect plugin '{entry_point.name}': {exc}")
                continue
            self._add(index, plugin)

        for candidate in self._builtin_plugins:
            name = getattr(candidate, '__name__', repr(candidate))
            try:
                plugin = self._instantiate(candidate, name)
            except Exception as exc:
                logger.error(f"Skipping built-in dialect plugin '{name}': {exc}")
                continue
            if plugin.identifier.strip().upper() in index:
                continue
            self._add(index, plugin)

        return index

    def _iter_entry_points(self) -> List[metadata.EntryPoint]:
        try:
            group = metadata.entry_points().select(group=self._entry_point_group)
        except Exception as exc:
            logger.error(f"Entry point discovery failed for '{self._entry_point_group}': {exc}")
            return []
        return sorted(group, key=lambda ep: ep.name)

    def _instantiate(self, obj: Any, name: str) -> DialectPlugin:
        """Turn an entry point target into a validated plugin instance.

        Raises:
            PluginError: If the object is not a usable dialect plugin.
        """
        plugin = obj() if inspect.isclass(obj) else obj
        if not isinstance(plugin, DialectPlugin):
            raise PluginError(f"'{name}' is not a DialectPlugin", plugin_name=name)
        identifier = getattr(plugin, 'identifier', None)
        if not isinstance(identifier, str) or not identifier.strip():
            raise PluginError(f"'{name}' has no dialect identifier", plugin_name=name)
        return plugin

    def _add(self, index: Dict[str, DialectPlugin], plugin: DialectPlugin) -> None:
        key = plugin.identifier.strip().upper()
        if key in index:
            logger.warning(f"Duplicate dialect plugin for {key}; keeping {index[key]!r}")
            return
        index[key] = plugin
        logger.debug(f"Registered dialect plugin {key}: {plugin.display_name or key}")

    def _current_index(self) -> Dict[str, DialectPlugin]:
        if not self._loaded:
            self.load()
        return self._index

    def resolve(self, dialect_id: Optional[str]) -> DialectPlugin:
        """Resolve a dialect identifier, ignoring case.

        Args:
            dialect_id: Database type identifier such as ``mysql``.

        Returns:
            The registered plugin instance.

        Raises:
            UnsupportedDialectError: If no plugin is registered for the identifier.
        """
        index = self._current_index()
        key = (dialect_id or "").strip().upper()
        plugin = index.get(key) if key else None
        if plugin is None:
            raise UnsupportedDialectError(dialect_id or "", supported=sorted(index))
        return plugin

    def is_supported(self, dialect_id: Optional[str]) -> bool:
        """Check whether a dialect is registered. Never raises."""
        try:
            key = (dialect_id or "").strip().upper()
            return bool(key) and key in self._current_index()
        except Exception as exc:
            logger.error(f"Error checking dialect support for '{dialect_id}': {exc}")
            return False

    def supported_dialects(self) -> List[str]:
        """Identifiers of all registered dialects, sorted."""
        return sorted(self._current_index())

    def all_plugins(self) -> List[DialectPlugin]:
        index = self._current_index()
        return [index[key] for key in sorted(index)]

    def driver_configs(self, dialect_id: Optional[str]) -> List[DriverConfig]:
        """Driver configurations of a dialect, empty for unknown dialects."""
        if not self.is_supported(dialect_id):
            return []
        return list(self.resolve(dialect_id).driver_configs)

    def default_driver_config(self, dialect_id: Optional[str]) -> Optional[DriverConfig]:
        """Default driver configuration of a dialect.

        Raises:
            UnsupportedDialectError: If the dialect is not registered.
        """
        return self.resolve(dialect_id).default_driver_config

    def statistics(self) -> Dict[str, Any]:
        """Point-in-time plugin statistics."""
        index = self._current_index()
        return {
            'total_plugins': len(set(id(plugin) for plugin in index.values())),
            'distinct_dialects': len(index),
            'supported_dialects': sorted(index),
            'total_driver_configs': sum(len(plugin.driver_configs) for plugin in index.values()),
        }
