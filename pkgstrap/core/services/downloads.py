"""
Download queue — the de-duplicated set of in-flight repository fetches.

A repository is in progress from ``add`` until ``complete`` or ``fail``.
Adding a repository that is already in progress is a no-op, so one
repository is never fetched twice concurrently even when refresh
passes overlap.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pkgstrap.core.models.package import SourceRepository

logger = logging.getLogger(__name__)


class TaskStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DownloadTask:
    """One fetch of one file from one repository."""

    repository: SourceRepository
    filename: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: float = field(default_factory=time.time)
    finished_at: float = 0.0
    size_bytes: int = 0
    last_error: str = ""

    @property
    def name(self) -> str:
        """Tasks are identified by repository name."""
        return self.repository.name

    @property
    def finished(self) -> bool:
        return self.status in (TaskStatus.DONE, TaskStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.repository.url_for(self.filename),
            "status": self.status.value,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
            "size_bytes": self.size_bytes,
            "last_error": self.last_error,
        }


class DownloadQueue:
    """In-progress set keyed by repository name, plus finished history.

    Only the newest ``max_history`` finished tasks are kept.
    """

    def __init__(self, max_history: int = 100) -> None:
        if max_history < 1:
            raise ValueError(f"max_history must be at least 1, got {max_history}")
        self._in_progress: dict[str, DownloadTask] = {}
        self._history: list[DownloadTask] = []
        self._max_history = max_history

    @property
    def in_progress(self) -> list[str]:
        return list(self._in_progress)

    @property
    def history(self) -> list[DownloadTask]:
        return list(self._history)

    def __contains__(self, name: object) -> bool:
        return name in self._in_progress

    def __len__(self) -> int:
        return len(self._in_progress)

    def add(self, repository: SourceRepository, filename: str) -> DownloadTask | None:
        """Queue a fetch. Returns None if the repository is already in progress."""
        if repository.name in self._in_progress:
            logger.debug("Download for '%s' already in progress", repository.name)
            return None
        task = DownloadTask(repository=repository, filename=filename)
        self._in_progress[repository.name] = task
        return task

    def start(self, task: DownloadTask) -> None:
        task.status = TaskStatus.RUNNING

    def complete(self, task: DownloadTask, size_bytes: int = 0) -> None:
        task.status = TaskStatus.DONE
        task.size_bytes = size_bytes
        self._finish(task)

    def fail(self, task: DownloadTask, error: str) -> None:
        task.status = TaskStatus.FAILED
        task.last_error = error
        self._finish(task)

    def _finish(self, task: DownloadTask) -> None:
        task.finished_at = time.time()
        if self._in_progress.get(task.name) is task:
            del self._in_progress[task.name]
        self._history.append(task)
        overflow = len(self._history) - self._max_history
        if overflow > 0:
            del self._history[:overflow]
            logger.debug("Dropped %d oldest download record(s)", overflow)
