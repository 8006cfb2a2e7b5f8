"""Project path mapping.

Plugins refer to project files by logical, root-relative paths
(``src/features``, ``!legacy/app.js``).  ``ProjectPaths`` turns those into
absolute paths under the project that is currently open.
"""
from __future__ import annotations

from pathlib import Path


class ProjectPaths:
    """Resolves logical paths against one project root."""

    def __init__(self, project_root: str | Path):
        self._root = Path(project_root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def map(self, *parts: str | Path) -> Path:
        """Map a logical path to an absolute path under the project root.

        Absolute inputs are returned unchanged.
        """
        if not parts:
            return self._root
        first = Path(parts[0])
        if first.is_absolute():
            return first.joinpath(*parts[1:])
        return self._root.joinpath(*parts)

    @staticmethod
    def join(*parts: str | Path) -> Path:
        return Path(*parts)

    def __repr__(self) -> str:
        return f"<ProjectPaths {self._root}>"
