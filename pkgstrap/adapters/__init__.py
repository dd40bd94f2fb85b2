"""Adapters — downloaders and the external TLS transport.

Public re-exports for convenient access.
"""

from pkgstrap.adapters.base import Downloader
from pkgstrap.adapters.mock import MockDownloader
from pkgstrap.adapters.native import NativeDownloader
from pkgstrap.adapters.selection import select_downloader
from pkgstrap.adapters.transport.downloader import TransportDownloader

__all__ = [
    "Downloader",
    "MockDownloader",
    "NativeDownloader",
    "TransportDownloader",
    "select_downloader",
]
