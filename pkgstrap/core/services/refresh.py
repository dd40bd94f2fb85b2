"""
Archive refresh — fetch every registered repository's index.

Best effort: a repository that cannot be reached or serves a bad index
is logged and skipped; the remaining repositories are still refreshed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pkgstrap.adapters.base import Downloader
from pkgstrap.core.errors import FetchError, IndexFormatError
from pkgstrap.core.registry.base import Registry
from pkgstrap.core.services.downloads import DownloadQueue

logger = logging.getLogger(__name__)


@dataclass
class RefreshReport:
    """Per-repository outcome of one refresh pass."""

    refreshed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    packages: int = 0

    @property
    def ok(self) -> bool:
        """Whether at least one repository was refreshed."""
        return bool(self.refreshed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "refreshed": self.refreshed,
            "failed": self.failed,
            "skipped": self.skipped,
            "packages": self.packages,
        }


def refresh_archives(
    registry: Registry,
    downloader: Downloader,
    queue: DownloadQueue | None = None,
) -> RefreshReport:
    """Fetch and merge the index of each registered repository, in order."""
    queue = queue if queue is not None else DownloadQueue()
    report = RefreshReport()

    for repository in registry.repositories():
        task = queue.add(repository, repository.index_filename)
        if task is None:
            report.skipped.append(repository.name)
            continue

        queue.start(task)
        try:
            raw = downloader.fetch(repository, repository.index_filename)
            report.packages += registry.merge_index(repository.name, raw)
        except (FetchError, IndexFormatError) as e:
            logger.warning("Failed to download '%s' archive: %s", repository.name, e)
            queue.fail(task, str(e))
            report.failed[repository.name] = str(e)
            continue
        except BaseException as e:
            queue.fail(task, str(e))
            raise

        queue.complete(task, size_bytes=len(raw))
        report.refreshed.append(repository.name)

    logger.info(
        "Refresh: %d archive(s) ok, %d failed",
        len(report.refreshed), len(report.failed),
    )
    return report
