"""Host startup and shutdown for the plugin system.

Usage::

    import bootstrap
    bootstrap.configure_logging()
    registry = bootstrap.start("/path/to/project")
    for plugin in registry.get_plugins("ui"):
        ...
    bootstrap.shutdown(registry)
"""
from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

import config
from paths import ProjectPaths
from plugins.loader import unload_all
from plugins.registry import PluginRegistry
from project_config import ProjectConfig

log = logging.getLogger("plinth")


def configure_logging(level: str | int | None = None, *, log_file: bool = True) -> None:
    """Send log records to stdout and, optionally, ``config.LOG_DIR``."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        config.LOG_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.LOG_DIR / config.LOG_FILE_NAME))

    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def start(
    project_root: str | Path,
    *,
    extra_dirs: Iterable[str | Path] = (),
    dev_project: str | Path | None = None,
    default_dir: str | Path | None = None,
) -> PluginRegistry:
    """Build the plugin registry for a project and load every plugin.

    Loading order: registered roots (default first, then ``extra_dirs``),
    plugins declared by the project, then dev plugins from ``dev_project``.
    """
    paths = ProjectPaths(project_root)
    project_config = ProjectConfig(paths.root)
    registry = PluginRegistry(paths, project_config, default_dir=default_dir)

    if not config.PLUGIN_ENABLED:
        log.info("Plugin system disabled (PLINTH_PLUGIN_ENABLED=False)")
        return registry

    for plugin_dir in extra_dirs:
        registry.add_plugins_dir(plugin_dir)

    registry.discover_all()
    registry.load_project_plugins()
    if dev_project is not None:
        registry.load_dev_plugins(dev_project)

    log.info("Plugin registry ready for %s: %r", paths.root, registry)
    return registry


def shutdown(registry: PluginRegistry) -> None:
    count = unload_all(registry)
    log.info("Unloaded %d plugin(s)", count)
