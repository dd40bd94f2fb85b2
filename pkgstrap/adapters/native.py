"""
Native downloader — HTTPS through the interpreter's own ``ssl`` module.
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request

from pkgstrap import __version__
from pkgstrap.adapters.base import Downloader
from pkgstrap.core.errors import FetchError
from pkgstrap.core.models.package import SourceRepository

logger = logging.getLogger(__name__)


class NativeDownloader(Downloader):
    """Fetch files with ``urllib.request``."""

    def __init__(self, timeout: float = 60.0):
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "native"

    def is_available(self) -> bool:
        try:
            import ssl  # noqa: F401
        except ImportError:
            return False
        return True

    def fetch(self, repository: SourceRepository, filename: str) -> bytes:
        url = repository.url_for(filename)
        req = urllib.request.Request(
            url,
            headers={"User-Agent": f"pkgstrap/{__version__}"},
        )
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            raise FetchError(f"HTTP {e.code} {e.reason} for {url}", repository=repository.name, url=url) from e
        except (urllib.error.URLError, OSError) as e:
            raise FetchError(f"Download of {url} failed: {e}", repository=repository.name, url=url) from e
