"""
Downloader selection — map a configured transport kind to a Downloader.

    auto      native TLS when the ``ssl`` module works, else external
    native    urllib + ssl
    external  TransportNegotiator driving gnutls-cli / openssl
    mock      MockDownloader (no network)
"""

from __future__ import annotations

import logging
from typing import Literal

from pkgstrap.adapters.base import Downloader
from pkgstrap.adapters.mock import MockDownloader
from pkgstrap.adapters.native import NativeDownloader
from pkgstrap.adapters.transport.downloader import TransportDownloader
from pkgstrap.adapters.transport.negotiator import ConfirmFn, TransportNegotiator
from pkgstrap.core.models.transport import TransportSettings

logger = logging.getLogger(__name__)

TransportKind = Literal["auto", "native", "external", "mock"]


def select_downloader(
    kind: TransportKind = "auto",
    settings: TransportSettings | None = None,
    confirm: ConfirmFn | None = None,
) -> Downloader:
    """Build the downloader for ``kind``.

    Raises:
        ValueError: For an unknown kind.
    """
    settings = settings or TransportSettings()

    if kind == "mock":
        return MockDownloader()

    external = TransportDownloader(TransportNegotiator(settings, confirm=confirm))
    if kind == "external":
        return external

    native = NativeDownloader(timeout=settings.read_timeout)
    if kind == "native":
        return native

    if kind == "auto":
        if native.is_available():
            return native
        logger.info("No native TLS support; using external TLS client")
        return external

    raise ValueError(f"Unknown transport kind: {kind!r}")
