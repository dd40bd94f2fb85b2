"""
Package loader — make installed packages available to the host.

Loading reads the install directory only; it never touches registry
state, so checking whether a bootstrap is needed costs no scoping and
no network access.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pkgstrap.core.errors import PackageLoadError
from pkgstrap.core.persistence.package_store import scan_installed

logger = logging.getLogger(__name__)


class PackageLoader:
    """Activates packages found under ``package_dir``.

    Each loaded package's directory is appended to ``load_path`` once.
    """

    def __init__(self, package_dir: Path):
        self.package_dir = package_dir
        self.load_path: list[Path] = []
        self._loaded: dict[str, Path] = {}

    @property
    def loaded(self) -> dict[str, Path]:
        return dict(self._loaded)

    def load(self, name: str) -> Path:
        """Load ``name`` and return its directory.

        Raises:
            PackageLoadError: If the package is not installed.
        """
        if name in self._loaded:
            return self._loaded[name]

        desc = scan_installed(self.package_dir).get(name)
        if desc is None or desc.directory is None or not desc.directory.is_dir():
            raise PackageLoadError(name, f"Cannot load package '{name}' from {self.package_dir}")

        self._loaded[name] = desc.directory
        if desc.directory not in self.load_path:
            self.load_path.append(desc.directory)
        logger.debug("Loaded %s from %s", desc.full_name, desc.directory)
        return desc.directory
