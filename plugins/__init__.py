"""Plinth plugin system.

Directory-based plugins.  Each plugin folder carries a manifest and,
optionally, an implementation module and a UI bundle.

Discovery: scan the default root (``config.PLUGIN_DIR``) plus any roots
registered with ``PluginRegistry.add_plugins_dir()``.  Plugins whose
feature files don't match the open project are skipped at load time;
plugins for a different application type are dropped on first read.
"""
from plugins.base import LoadResult, LoadStatus, PluginDescriptor, UICapability
from plugins.loader import (
    discover_plugins,
    is_plugin_valid_for_project,
    load_dev_plugins,
    load_plugin,
    load_plugins,
    load_project_plugins,
    unload_all,
)
from plugins.registry import PluginRegistry

__all__ = [
    "LoadResult",
    "LoadStatus",
    "PluginDescriptor",
    "PluginRegistry",
    "UICapability",
    "discover_plugins",
    "is_plugin_valid_for_project",
    "load_dev_plugins",
    "load_plugin",
    "load_plugins",
    "load_project_plugins",
    "unload_all",
]
