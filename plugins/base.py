"""Plugin descriptor types.

Provides:
  - ``PluginDescriptor``: one loaded plugin (manifest fields + extensions)
  - ``UICapability``: where a plugin's UI bundle lives
  - ``LoadStatus`` / ``LoadResult``: outcome of loading one plugin folder

The host only interprets the fixed descriptor fields.  Whatever the
plugin's implementation module exports ends up in ``extensions`` and is
passed through untouched.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any


class LoadStatus(str, Enum):
    """Outcome of loading a plugin directory."""
    LOADED = "loaded"
    NO_MANIFEST = "no_manifest"
    INVALID_MANIFEST = "invalid_manifest"
    IMPORT_FAILED = "import_failed"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class UICapability:
    """UI contributed by a plugin.

    ``root`` is the bundle folder.  ``root_link`` is only set for dev
    plugins whose bundle is served live by a dev server.
    """

    root: Path
    root_link: str | None = None


@dataclass
class PluginDescriptor:
    """A loaded plugin."""

    name: str
    app_type: str | list[str] | None = None
    is_app_plugin: bool = False
    feature_files: list[str] | None = None
    ui: UICapability | None = None
    path: Path | None = None
    extensions: dict[str, Any] = field(default_factory=dict)

    @property
    def app_types(self) -> tuple[str, ...]:
        """``app_type`` as a tuple; empty for universal plugins."""
        if not self.app_type:
            return ()
        if isinstance(self.app_type, str):
            return (self.app_type,)
        return tuple(self.app_type)

    @property
    def is_universal(self) -> bool:
        return not self.app_types

    def get(self, prop: str, default: Any = None) -> Any:
        """Look up a descriptor field, falling back to ``extensions``."""
        if prop in _FIELD_NAMES:
            return getattr(self, prop)
        return self.extensions.get(prop, default)

    def get_info(self) -> dict[str, Any]:
        """Return plugin metadata as a dict."""
        return {
            "name": self.name,
            "app_type": self.app_type,
            "is_app_plugin": self.is_app_plugin,
            "path": str(self.path) if self.path else None,
            "ui": str(self.ui.root) if self.ui else None,
            "extensions": sorted(self.extensions),
        }

    def __repr__(self) -> str:
        app = ",".join(self.app_types) or "*"
        return f"<Plugin {self.name} [{app}]>"


_FIELD_NAMES = frozenset(f.name for f in fields(PluginDescriptor)) - {"extensions"}


@dataclass(frozen=True)
class LoadResult:
    """Result of loading one plugin directory.

    Lets callers tell "nothing to load here" apart from "broken plugin"
    without digging through logs.
    """

    status: LoadStatus
    path: Path
    descriptor: PluginDescriptor | None = None
    reason: str = ""
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status is LoadStatus.LOADED and self.descriptor is not None

    @classmethod
    def loaded(cls, path: Path, descriptor: PluginDescriptor) -> LoadResult:
        return cls(LoadStatus.LOADED, path, descriptor)

    @classmethod
    def failed(
        cls,
        status: LoadStatus,
        path: Path,
        reason: str,
        error: BaseException | None = None,
    ) -> LoadResult:
        return cls(status, path, None, reason, error)
