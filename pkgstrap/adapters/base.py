"""
Downloader base — the contract between the orchestrator and the network.

The orchestrator and the refresh step only ever fetch bytes through
this interface. Implementations decide how the bytes travel: over the
interpreter's own TLS, over an external TLS client, or from memory.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pkgstrap.core.models.package import SourceRepository


class Downloader(ABC):
    """Abstract base class for all downloaders.

    To create a new downloader:
        1. Subclass Downloader
        2. Implement name, is_available, fetch
        3. Add it to ``select_downloader`` if it should be configurable
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The downloader identifier (e.g., 'native', 'external')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this downloader can run here. Should be fast and never raise."""

    @abstractmethod
    def fetch(self, repository: SourceRepository, filename: str) -> bytes:
        """Fetch ``filename`` from ``repository`` and return its body.

        Raises:
            FetchError: On any transport, protocol or HTTP status failure.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
