"""
Mock downloader — in-memory test double.

Serves canned payloads keyed by ``(repository name, filename)``.
Repositories can be configured to fail outright.
"""

from __future__ import annotations

from pkgstrap.adapters.base import Downloader
from pkgstrap.core.errors import FetchError
from pkgstrap.core.models.package import SourceRepository


class MockDownloader(Downloader):
    """Universal mock downloader for testing and ``--transport mock`` runs."""

    def __init__(self, downloader_name: str = "mock", available: bool = True):
        self._name = downloader_name
        self._available = available
        self._payloads: dict[tuple[str, str], bytes] = {}
        self._failures: dict[str, str] = {}
        self._call_log: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[tuple[str, str]]:
        """Every (repository, filename) this mock was asked for."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def serve(self, repository: str, filename: str, payload: bytes) -> None:
        """Register a payload for a file in a repository."""
        self._payloads[(repository, filename)] = payload

    def set_failure(self, repository: str, error: str = "Mock failure") -> None:
        """Make every fetch from ``repository`` fail."""
        self._failures[repository] = error

    def fetch(self, repository: SourceRepository, filename: str) -> bytes:
        self._call_log.append((repository.name, filename))
        url = repository.url_for(filename)

        if repository.name in self._failures:
            raise FetchError(self._failures[repository.name], repository=repository.name, url=url)

        payload = self._payloads.get((repository.name, filename))
        if payload is None:
            raise FetchError(f"HTTP 404 Not Found for {url}", repository=repository.name, url=url)
        return payload

    def reset(self) -> None:
        """Clear call log, payloads and failures."""
        self._call_log.clear()
        self._payloads.clear()
        self._failures.clear()
