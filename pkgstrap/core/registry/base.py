"""
Registry base — the package registry whose global state a bootstrap scopes.

The registry holds four values that together make up "the environment":

    archives          repository name → base URL
    package_alist     locally installed packages
    archive_contents  packages described by the fetched indexes
    user_dir          install target directory

The isolated environment swaps these out and back; nothing else is
expected to reassign them during a bootstrap run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from pkgstrap.adapters.base import Downloader
from pkgstrap.core.models.package import PackageDesc, SourceRepository

logger = logging.getLogger(__name__)


def _default_user_dir() -> Path:
    return Path.home() / ".pkgstrap" / "packages"


@dataclass
class RegistryState:
    """The four values captured and restored by the isolated environment."""

    archives: dict[str, str] = field(default_factory=dict)
    package_alist: dict[str, PackageDesc] = field(default_factory=dict)
    archive_contents: dict[str, PackageDesc] = field(default_factory=dict)
    user_dir: Path = field(default_factory=_default_user_dir)


class Registry(ABC):
    """Abstract package registry.

    Subclasses decide how indexes are parsed and how packages land on
    disk. Repository bookkeeping is shared.
    """

    def __init__(self, state: RegistryState | None = None):
        self.state = state or RegistryState()
        # name → index format; archives itself only maps name → URL
        self._index_formats: dict[str, str] = {}

    # ── Repositories ─────────────────────────────────────────────

    def register_archive(self, repository: SourceRepository) -> None:
        """Add a repository. Re-registering a name keeps its position."""
        if repository.name in self.state.archives:
            logger.debug("Archive '%s' already registered", repository.name)
        self.state.archives[repository.name] = repository.base_url
        self._index_formats[repository.name] = repository.index_format

    def repositories(self) -> list[SourceRepository]:
        """Registered repositories, in registration order."""
        return [self._repository(name, url) for name, url in self.state.archives.items()]

    def repository(self, name: str) -> SourceRepository | None:
        url = self.state.archives.get(name)
        return self._repository(name, url) if url else None

    def _repository(self, name: str, url: str) -> SourceRepository:
        return SourceRepository(
            name=name, base_url=url, index_format=self._index_formats.get(name, "json"),
        )

    # ── Packages ─────────────────────────────────────────────────

    def is_installed(self, name: str) -> bool:
        return name in self.state.package_alist

    def describe(self, name: str) -> PackageDesc | None:
        """The best remote description of ``name``, if any index has it."""
        return self.state.archive_contents.get(name)

    @abstractmethod
    def initialize(self) -> None:
        """Rebuild ``package_alist`` from ``user_dir``."""

    @abstractmethod
    def merge_index(self, archive: str, raw: bytes) -> int:
        """Parse a fetched index and merge it into ``archive_contents``.

        Returns:
            Number of package descriptions read from the index.

        Raises:
            IndexFormatError: If ``raw`` is not a valid index.
        """

    @abstractmethod
    def install(self, name: str, downloader: Downloader) -> PackageDesc:
        """Download and unpack ``name`` into ``user_dir``.

        Raises:
            PackageInstallError: If no index has the package or it cannot
                be fetched or unpacked.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} user_dir={str(self.state.user_dir)!r}>"
