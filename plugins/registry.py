"""Plugin registry and activation filter.

``PluginRegistry`` is the host's single collection of loaded plugins.  It
is created once at startup (see ``bootstrap.start``) and passed to whoever
needs plugins; there is no module-level instance.

Reads are filtered lazily: the first ``get_plugins()`` after any ``add``
resolves the application type for the run and drops every plugin that
does not serve it.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import config
from paths import ProjectPaths
from plugins import loader
from plugins.base import LoadResult, PluginDescriptor
from project_config import ProjectConfig

log = logging.getLogger(__name__)


class PluginRegistry:
    """Ordered registry of loaded plugins, unique by name.

    Insertion order is kept for both storage and reads.
    """

    def __init__(
        self,
        paths: ProjectPaths,
        project_config: ProjectConfig,
        *,
        default_dir: str | Path | None = None,
    ):
        self._paths = paths
        self._project_config = project_config
        self._default_dir = Path(default_dir) if default_dir else config.PLUGIN_DIR
        self._plugins_dirs: list[Path] = [self._default_dir]
        self._plugins: list[PluginDescriptor] = []
        self._needs_filter = True
        self._app_type: str | None = None
        self._lock = threading.RLock()

    @property
    def paths(self) -> ProjectPaths:
        return self._paths

    @property
    def project_config(self) -> ProjectConfig:
        return self._project_config

    @property
    def needs_filter(self) -> bool:
        return self._needs_filter

    @property
    def app_type(self) -> str | None:
        """App type resolved by the last filter pass, if any."""
        return self._app_type

    # -- plugin roots -------------------------------------------------------

    def get_plugins_dir(self) -> Path:
        """Return the default plugin root."""
        return self._default_dir

    def add_plugins_dir(self, plugin_dir: str | Path) -> None:
        path = Path(plugin_dir).expanduser()
        with self._lock:
            if path in self._plugins_dirs:
                log.debug("Plugin directory already registered: %s", path)
                return
            self._plugins_dirs.append(path)

    @property
    def plugins_dirs(self) -> list[Path]:
        with self._lock:
            return list(self._plugins_dirs)

    # -- mutation -----------------------------------------------------------

    def add(self, plugin: PluginDescriptor | None) -> None:
        """Add a plugin.  Never replaces a plugin with the same name."""
        if not plugin:
            log.warning("Adding empty plugin, ignored: %r", plugin)
            return
        if not plugin.name:
            raise ValueError("Each plugin should have a name")

        with self._lock:
            if not self._needs_filter:
                log.warning(
                    "Plugin '%s' added after get_plugins() was called; "
                    "earlier results are stale",
                    plugin.name,
                )
            if self._find(plugin.name) is not None:
                log.warning("Plugin '%s' already registered, ignored", plugin.name)
                return
            self._plugins.append(plugin)
            self._needs_filter = True
        log.info("Plugin added: %s", plugin.name)

    def add_from_path(self, plugin_root: str | Path) -> LoadResult:
        """Load the plugin at ``plugin_root`` and add it if it loaded."""
        result = loader.load_plugin(plugin_root, self._paths)
        if result.ok:
            self.add(result.descriptor)
        return result

    def remove(self, name: str) -> list[PluginDescriptor]:
        """Remove every plugin called ``name``; returns what was removed."""
        with self._lock:
            removed = [p for p in self._plugins if p.name == name]
            if removed:
                self._plugins = [p for p in self._plugins if p.name != name]
        if not removed:
            log.warning("No plugin was removed: %s", name)
        else:
            log.info("Plugin removed: %s", name)
        return removed

    # -- discovery ----------------------------------------------------------

    def discover(self, plugin_dir: str | Path) -> list[LoadResult]:
        """Load every plugin folder directly under ``plugin_dir``."""
        return loader.load_plugins(plugin_dir, self)

    def discover_all(self) -> list[LoadResult]:
        """Discover plugins in every registered root, default root first."""
        results: list[LoadResult] = []
        for plugin_dir in self.plugins_dirs:
            results.extend(self.discover(plugin_dir))
        return results

    def load_dev_plugins(self, project_root: str | Path) -> list[LoadResult]:
        return loader.load_dev_plugins(project_root, self)

    def load_project_plugins(self) -> list[LoadResult]:
        return loader.load_project_plugins(self)

    # -- reads --------------------------------------------------------------

    def _find(self, name: str) -> PluginDescriptor | None:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    def _infer_app_type(self) -> str:
        # First app plugin not typed exactly "common" decides, even if untyped
        common = config.COMMON_APP_TYPE
        for plugin in self._plugins:
            if not plugin.is_app_plugin or plugin.app_types == (common,):
                continue
            candidates = [t for t in plugin.app_types if t != common]
            return candidates[0] if candidates else common
        return common

    def _filter_plugins(self) -> None:
        app_type = self._project_config.get_resolved(explicit=True).get("app_type")
        if not app_type:
            app_type = self._infer_app_type()
        app_type = str(app_type)
        self._project_config.set_app_type(app_type)

        self._plugins = [
            p for p in self._plugins
            if p.is_universal or app_type in p.app_types
        ]
        for p in self._plugins:
            log.info("Plugin applied: %s %s", p.name, p.ui.root if p.ui else "")

        self._app_type = app_type
        self._needs_filter = False

    def get_plugins(self, prop: str | None = None) -> list[PluginDescriptor]:
        """Return the active plugins, filtering first if anything changed.

        With ``prop``, only plugins whose ``prop`` is truthy are returned
        (e.g. ``get_plugins("ui")``).
        """
        with self._lock:
            if self._needs_filter:
                self._filter_plugins()
            plugins = list(self._plugins)
        if prop:
            return [p for p in plugins if p.get(prop)]
        return plugins

    def get(self, name: str) -> PluginDescriptor | None:
        """Get a plugin by name (unfiltered)."""
        with self._lock:
            return self._find(name)

    def names(self) -> list[str]:
        with self._lock:
            return [p.name for p in self._plugins]

    def list_plugins(self) -> list[dict[str, Any]]:
        """Return info for all registered plugins, in registry order."""
        with self._lock:
            plugins = list(self._plugins)
        return [p.get_info() for p in plugins]

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._plugins)

    def __repr__(self) -> str:
        with self._lock:
            count = len(self._plugins)
        return f"<PluginRegistry [{count} plugins]>"
