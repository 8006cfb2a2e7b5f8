"""Plugin loading and discovery.

A plugin is a directory::

    my-plugin/
      plugin.json        # manifest (or plugin.yaml / plugin.yml), required
      core/__init__.py   # implementation module (or core.py), optional
      main.js            # pre-built UI bundle entry, optional
      entry.js           # dev-server entry (dev plugins only)

Usage::

    from plugins.loader import load_plugin
    result = load_plugin(plugin_dir, paths)
    if result.ok:
        registry.add(result.descriptor)

Loading rules:
  1. The manifest must exist and be a mapping with a ``name``
     (the implementation module may supply the name instead)
  2. The implementation module's exports are merged first; manifest
     metadata (name, app_type, is_app_plugin, feature_files) wins
  3. ``main.js`` present and UI not suppressed -> static UI at the plugin root
  4. ``feature_files`` must all match the current project
  5. Nothing raised while loading ever escapes ``load_plugin``
"""
from __future__ import annotations

import __future__
import hashlib
import importlib.util
import json
import logging
import re
import sys
import types
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

import config
from paths import ProjectPaths
from plugins.base import LoadResult, LoadStatus, PluginDescriptor, UICapability

if TYPE_CHECKING:
    from plugins.registry import PluginRegistry

log = logging.getLogger(__name__)

# Manifest keys the host interprets, with accepted spellings
_META_KEYS = {
    "name": "name",
    "app_type": "app_type",
    "appType": "app_type",
    "is_app_plugin": "is_app_plugin",
    "isAppPlugin": "is_app_plugin",
    "feature_files": "feature_files",
    "featureFiles": "feature_files",
}

_MODULE_NAME_RE = re.compile(r"\W")


class ManifestError(ValueError):
    """Raised when a manifest exists but cannot be used."""


# ---------------------------------------------------------------------------
# Manifest + implementation module
# ---------------------------------------------------------------------------

def find_manifest(plugin_root: Path) -> Path | None:
    for filename in config.MANIFEST_FILES:
        candidate = plugin_root / filename
        if candidate.is_file():
            return candidate
    return None


def read_manifest(path: Path) -> dict[str, Any]:
    """Parse a manifest file into a dict."""
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ManifestError(f"cannot parse {path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{path.name} must contain a mapping, got {type(data).__name__}")
    return data


def _module_name(plugin_root: Path) -> str:
    """Private module name, unique per plugin folder location."""
    digest = hashlib.sha1(str(plugin_root.resolve()).encode("utf-8")).hexdigest()[:10]
    stem = _MODULE_NAME_RE.sub("_", plugin_root.name)
    return f"{config.PLUGIN_MODULE_PREFIX}{stem}_{digest}"


def _forget_module(module_name: str) -> None:
    """Drop a plugin module and its submodules from ``sys.modules``."""
    for name in [m for m in sys.modules if m == module_name or m.startswith(module_name + ".")]:
        sys.modules.pop(name, None)


def _find_core_entry(plugin_root: Path) -> Path | None:
    for rel in config.CORE_ENTRIES:
        candidate = plugin_root / rel
        if candidate.is_file():
            return candidate
    return None


def _module_exports(module: types.ModuleType) -> dict[str, Any]:
    names = getattr(module, "__all__", None)
    if names is not None:
        return {name: getattr(module, name) for name in names}
    return {
        name: value
        for name, value in vars(module).items()
        if not name.startswith("_")
        and not isinstance(value, (types.ModuleType, __future__._Feature))
    }


def load_core_module(plugin_root: Path) -> dict[str, Any]:
    """Import the plugin's implementation module and return its exports.

    Returns an empty dict when the plugin has no implementation module.
    """
    entry = _find_core_entry(plugin_root)
    if entry is None:
        return {}

    module_name = _module_name(plugin_root)
    search_locations = [str(entry.parent)] if entry.name == "__init__.py" else None
    spec = importlib.util.spec_from_file_location(
        module_name, str(entry), submodule_search_locations=search_locations,
    )
    if spec is None or spec.loader is None:
        raise ImportError(f"invalid module spec for {entry}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        # Clean up on failure
        _forget_module(module_name)
        raise
    return _module_exports(module)


# ---------------------------------------------------------------------------
# Applicability
# ---------------------------------------------------------------------------

def is_plugin_valid_for_project(plugin: PluginDescriptor, paths: ProjectPaths) -> bool:
    """Check the plugin's ``feature_files`` against the project layout.

    ``!path`` requires the path to be absent, anything else requires it to
    exist.  A plugin without a feature file list always applies.
    """
    if not isinstance(plugin.feature_files, list):
        return True
    for entry in plugin.feature_files:
        entry = str(entry)
        if entry.startswith("!"):
            if paths.map(entry[1:]).exists():
                return False
        elif not paths.map(entry).exists():
            return False
    return True


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _coerce_ui(value: Any) -> UICapability | None:
    if isinstance(value, UICapability):
        return value
    if isinstance(value, dict) and value.get("root"):
        return UICapability(root=Path(value["root"]), root_link=value.get("root_link"))
    return None


def _check_app_type(value: Any) -> str | list[str] | None:
    """Accept a string or a list of strings; empty means universal."""
    if not value and not isinstance(value, (int, float)):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(t, str) and t for t in value):
        return list(value)
    raise ManifestError(f"app_type must be a string or a list of strings, got {value!r}")


def _build_descriptor(
    plugin_root: Path,
    manifest: dict[str, Any],
    exports: dict[str, Any],
) -> PluginDescriptor:
    meta: dict[str, Any] = {}
    extensions: dict[str, Any] = {}
    for key, value in manifest.items():
        if key in _META_KEYS:
            meta[_META_KEYS[key]] = value
        else:
            extensions[key] = value

    # Implementation exports override plain manifest extras but never metadata
    merged: dict[str, Any] = {}
    for key, value in exports.items():
        if key in _META_KEYS:
            merged[_META_KEYS[key]] = value
        else:
            extensions[key] = value
    merged.update(meta)

    ui = _coerce_ui(extensions.pop("ui", None))

    name = merged.get("name")
    if not name or not isinstance(name, str):
        raise ManifestError("plugin has no name")

    feature_files = merged.get("feature_files")
    if isinstance(feature_files, tuple):
        feature_files = list(feature_files)

    return PluginDescriptor(
        name=name,
        app_type=_check_app_type(merged.get("app_type")),
        is_app_plugin=bool(merged.get("is_app_plugin", False)),
        feature_files=feature_files,
        ui=ui,
        path=plugin_root,
        extensions=extensions,
    )


def load_plugin(
    plugin_root: str | Path,
    paths: ProjectPaths,
    *,
    no_ui: bool = False,
) -> LoadResult:
    """Load a single plugin directory.

    Never raises: every failure is logged with the plugin path and
    returned as a failed ``LoadResult``.
    """
    root = Path(plugin_root)
    log.info("Loading plugin: %s", root)

    manifest_path = find_manifest(root)
    if manifest_path is None:
        log.warning("Skipping %s: no manifest (%s)", root, ", ".join(config.MANIFEST_FILES))
        return LoadResult.failed(LoadStatus.NO_MANIFEST, root, "no manifest")

    try:
        manifest = read_manifest(manifest_path)
    except (OSError, ValueError) as exc:
        log.warning("Failed to load plugin %s: bad manifest", root, exc_info=True)
        return LoadResult.failed(LoadStatus.INVALID_MANIFEST, root, str(exc), exc)

    try:
        exports = load_core_module(root)
    except (Exception, SystemExit) as exc:
        log.warning("Failed to load plugin %s: implementation module raised", root, exc_info=True)
        return LoadResult.failed(LoadStatus.IMPORT_FAILED, root, f"{type(exc).__name__}: {exc}", exc)

    try:
        plugin = _build_descriptor(root, manifest, exports)
        if not no_ui and (root / config.UI_ENTRY).is_file():
            plugin.ui = UICapability(root=root)
        valid = is_plugin_valid_for_project(plugin, paths)
    except ManifestError as exc:
        log.warning("Failed to load plugin %s: %s", root, exc)
        _forget_module(_module_name(root))
        return LoadResult.failed(LoadStatus.INVALID_MANIFEST, root, str(exc), exc)
    except Exception as exc:
        log.warning("Failed to load plugin %s", root, exc_info=True)
        _forget_module(_module_name(root))
        return LoadResult.failed(LoadStatus.INVALID_MANIFEST, root, f"{type(exc).__name__}: {exc}", exc)

    if not valid:
        log.debug("Plugin %s does not apply to %s", plugin.name, paths.root)
        _forget_module(_module_name(root))
        return LoadResult.failed(LoadStatus.NOT_APPLICABLE, root, "feature files do not match project")

    return LoadResult.loaded(root, plugin)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def discover_plugins(plugin_dir: str | Path) -> list[Path]:
    """List candidate plugin folders without loading them.

    Immediate subdirectories only, in the order the filesystem reports
    them.  A missing or unreadable directory yields an empty list.
    """
    target_dir = Path(plugin_dir)
    if not target_dir.is_dir():
        log.debug("Plugin directory does not exist: %s", target_dir)
        return []
    try:
        entries = list(target_dir.iterdir())
    except OSError:
        log.warning("Cannot list plugin directory %s", target_dir, exc_info=True)
        return []
    return [entry for entry in entries if entry.is_dir()]


def load_plugins(plugin_dir: str | Path, registry: PluginRegistry) -> list[LoadResult]:
    """Load every plugin folder in ``plugin_dir`` into ``registry``.

    Additive: plugins already in the registry stay where they are.
    """
    log.info("Loading plugins from %s", plugin_dir)
    results = [registry.add_from_path(folder) for folder in discover_plugins(plugin_dir)]
    loaded = [r.descriptor.name for r in results if r.ok]
    failed = [r for r in results if not r.ok and r.status is not LoadStatus.NOT_APPLICABLE]
    if loaded:
        log.info("Loaded %d plugin(s) from %s: %s", len(loaded), plugin_dir, ", ".join(loaded))
    if failed:
        log.warning(
            "Failed to load %d plugin(s): %s",
            len(failed), "; ".join(f"{r.path.name}: {r.reason}" for r in failed),
        )
    return results


def load_dev_plugins(project_root: str | Path, registry: PluginRegistry) -> list[LoadResult]:
    """Load plugins under development from a plugin project's features.

    Each feature folder is loaded without static UI.  Folders with a dev
    entry get a UI pointing at the dev server's live bundle instead.
    """
    prj_root = Path(project_root).expanduser().resolve()
    dev_port = registry.project_config.get_resolved(project_root=prj_root)["dev_port"]
    features_dir = prj_root / config.DEV_FEATURES_DIR
    if not features_dir.is_dir():
        log.warning("No features folder in dev project: %s", features_dir)
        return []

    results: list[LoadResult] = []
    for plugin_root in discover_plugins(features_dir):
        log.info("Loading dev plugin: %s", plugin_root)
        result = load_plugin(plugin_root, registry.paths, no_ui=True)
        results.append(result)
        if not result.ok:
            continue
        plugin = result.descriptor
        if (plugin_root / config.DEV_ENTRY).is_file():
            plugin.ui = UICapability(
                root=plugin_root / config.DEV_PUBLIC_DIR,
                root_link=config.DEV_BUNDLE_URL.format(port=dev_port, name=plugin.name),
            )
        registry.add(plugin)
    return results


def load_project_plugins(registry: PluginRegistry) -> list[LoadResult]:
    """Load the plugins the current project lists under ``plugins``."""
    declared = registry.project_config.get_resolved(explicit=True)["plugins"]
    results: list[LoadResult] = []
    for entry in declared:
        plugin_root = registry.paths.map(entry)
        if not plugin_root.is_dir():
            log.warning("Project plugin not found: %s (%s)", entry, plugin_root)
            continue
        results.append(registry.add_from_path(plugin_root))
    return results


def unload_all(registry: PluginRegistry) -> int:
    """Remove every plugin from the registry and forget its module.

    Returns the number of plugins removed.
    """
    names = registry.names()
    for name in names:
        registry.remove(name)
    for module_name in [m for m in sys.modules if m.startswith(config.PLUGIN_MODULE_PREFIX)]:
        sys.modules.pop(module_name, None)
    return len(names)
