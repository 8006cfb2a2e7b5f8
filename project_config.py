"""Per-project configuration.

Each project may carry a ``plinth.yaml`` (or ``.yml`` / ``plinth.json``)
at its root::

    app_type: web
    dev_port: 6076
    plugins:
      - ./tools/my-plugin

The plugin registry reads ``app_type`` to decide which plugins apply and
writes the resolved type back through ``set_app_type()`` so the rest of the
host sees the same value.  The dev scanner reads ``dev_port``.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

import yaml

import config

log = logging.getLogger(__name__)

# camelCase spellings accepted for compatibility with older project files
_KEY_ALIASES = {
    "appType": "app_type",
    "devPort": "dev_port",
}


def _load_file(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"project config must be a mapping: {path}")
    return data


def _normalize(raw: dict[str, Any]) -> dict[str, Any]:
    resolved: dict[str, Any] = {}
    for key, value in raw.items():
        resolved[_KEY_ALIASES.get(key, key)] = value

    resolved["app_type"] = resolved.get("app_type") or None

    try:
        resolved["dev_port"] = int(resolved.get("dev_port") or config.DEFAULT_DEV_PORT)
    except (TypeError, ValueError):
        log.warning("Invalid dev_port %r, using %d", resolved.get("dev_port"), config.DEFAULT_DEV_PORT)
        resolved["dev_port"] = config.DEFAULT_DEV_PORT

    plugins = resolved.get("plugins") or []
    if not isinstance(plugins, list):
        log.warning("Ignoring non-list 'plugins' entry in project config")
        plugins = []
    resolved["plugins"] = [str(p) for p in plugins]
    return resolved


class ProjectConfig:
    """Loads and caches project configuration.

    ``get_resolved()`` without ``project_root`` refers to the project the
    host was started for.  Other roots (sibling projects in dev mode) are
    read on demand and cached separately; the app type override only ever
    applies to the default project.
    """

    def __init__(self, project_root: str | Path):
        self._root = Path(project_root).expanduser().resolve()
        self._cache: dict[Path, dict[str, Any]] = {}
        self._app_type_override: str | None = None
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def config_file(self, project_root: str | Path | None = None) -> Path | None:
        """Return the first existing config file for the project, if any."""
        root = Path(project_root).expanduser().resolve() if project_root else self._root
        for filename in config.PROJECT_CONFIG_FILES:
            candidate = root / filename
            if candidate.is_file():
                return candidate
        return None

    def _read(self, root: Path) -> dict[str, Any]:
        path = self.config_file(root)
        if path is None:
            log.debug("No project config in %s, using defaults", root)
            return _normalize({})
        try:
            return _normalize(_load_file(path))
        except (OSError, ValueError, yaml.YAMLError):
            log.warning("Failed to read project config %s, using defaults", path, exc_info=True)
            return _normalize({})

    def get_resolved(
        self,
        explicit: bool = False,
        project_root: str | Path | None = None,
        *,
        force_reload: bool = False,
    ) -> dict[str, Any]:
        """Return the resolved configuration dict for a project.

        Keys always present: ``app_type`` (may be None), ``dev_port``,
        ``plugins``.  Unknown keys from the file are passed through.

        With ``explicit=True`` the app type is the one written in the
        project file, ignoring any type recorded by ``set_app_type()``.
        """
        root = Path(project_root).expanduser().resolve() if project_root else self._root
        with self._lock:
            if force_reload or root not in self._cache:
                self._cache[root] = self._read(root)
            resolved = dict(self._cache[root])
            if not explicit and root == self._root and self._app_type_override:
                resolved["app_type"] = self._app_type_override
        return resolved

    def set_app_type(self, app_type: str) -> None:
        """Record the application type resolved for this run."""
        with self._lock:
            self._app_type_override = app_type
        log.debug("App type set: %s", app_type)

    def __repr__(self) -> str:
        return f"<ProjectConfig {self._root}>"
