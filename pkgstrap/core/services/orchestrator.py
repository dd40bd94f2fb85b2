"""
Install orchestrator — make a dependency list loadable.

    1. load every dependency; all present → done (no scope, no network)
    2. enter the isolated environment
    3. register the fallback repositories
    4. refresh their indexes (per-repository failures tolerated)
    5. install each dependency that is not installed yet (fatal on failure)
    6. load again; failure is fatal and carries the load error as cause

There is no retry tier beyond step 6.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from pkgstrap.adapters.base import Downloader
from pkgstrap.core.errors import BootstrapError, PackageLoadError
from pkgstrap.core.models.package import DEFAULT_REPOSITORIES, DependencySpec, SourceRepository
from pkgstrap.core.registry.base import Registry
from pkgstrap.core.registry.loader import PackageLoader
from pkgstrap.core.services.downloads import DownloadQueue
from pkgstrap.core.services.environment import isolated_environment, private_dir
from pkgstrap.core.services.refresh import RefreshReport, refresh_archives

logger = logging.getLogger(__name__)


@dataclass
class BootstrapOutcome:
    """What a successful ``ensure`` did."""

    already_present: bool = False
    installed: list[str] = field(default_factory=list)
    refresh: RefreshReport | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "already_present": self.already_present,
            "installed": self.installed,
            "refresh": self.refresh.to_dict() if self.refresh else None,
        }


class InstallOrchestrator:
    """Bootstraps a DependencySpec through injected registry and downloader.

    Args:
        registry: Registry whose state is scoped during installs.
        downloader: Fetches indexes and archives.
        host_version: Host application version; keys the private directory.
        bootstrap_root: Parent of the per-version private directories.
        repositories: Fallback repositories registered on a miss.
        loader: Loads installed packages; defaults to one reading the
            private directory.
        queue: In-progress download set shared across refresh passes.
    """

    def __init__(
        self,
        registry: Registry,
        downloader: Downloader,
        host_version: str,
        bootstrap_root: Path,
        repositories: Sequence[SourceRepository] = DEFAULT_REPOSITORIES,
        loader: PackageLoader | None = None,
        queue: DownloadQueue | None = None,
    ):
        self.registry = registry
        self.downloader = downloader
        self.host_version = host_version
        self.bootstrap_root = bootstrap_root
        self.repositories = list(repositories)
        self.loader = loader or PackageLoader(private_dir(bootstrap_root, host_version))
        self.queue = queue if queue is not None else DownloadQueue()
        self.last_refresh: RefreshReport | None = None

    @property
    def package_dir(self) -> Path:
        return private_dir(self.bootstrap_root, self.host_version)

    def unloadable(self, spec: DependencySpec) -> list[PackageLoadError]:
        """Load every dependency; return the failures."""
        failures: list[PackageLoadError] = []
        for name in spec:
            try:
                self.loader.load(name)
            except PackageLoadError as e:
                failures.append(e)
        return failures

    def ensure(self, spec: DependencySpec) -> BootstrapOutcome:
        """Make every dependency in ``spec`` loadable.

        Raises:
            PackageInstallError: A dependency could not be installed.
            BootstrapError: Dependencies still fail to load after install.
        """
        missing = self.unloadable(spec)
        if not missing:
            logger.debug("All %d dependencies already loadable", len(spec))
            return BootstrapOutcome(already_present=True)

        logger.info(
            "Bootstrapping dependencies into %s (missing: %s)",
            self.package_dir, ", ".join(e.name for e in missing),
        )
        installed: list[str] = []
        with isolated_environment(self.registry, self.host_version, self.bootstrap_root):
            self.registry.initialize()
            for repository in self.repositories:
                self.registry.register_archive(repository)

            self.last_refresh = refresh_archives(self.registry, self.downloader, self.queue)

            for name in spec:
                if self.registry.is_installed(name):
                    continue
                self.registry.install(name, self.downloader)
                installed.append(name)

        failures = self.unloadable(spec)
        if failures:
            names = [e.name for e in failures]
            raise BootstrapError(
                f"Dependency bootstrap could not complete: cannot load {', '.join(names)}",
                unresolved=names,
            ) from failures[-1]

        return BootstrapOutcome(installed=installed, refresh=self.last_refresh)
