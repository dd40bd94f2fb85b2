"""
External-client downloader — HTTP over a negotiated TLS channel.

Used when the interpreter has no usable ``ssl`` module, or when the
configuration forces the external transport.
"""

from __future__ import annotations

import logging
import shutil
import time

from pkgstrap.adapters.base import Downloader
from pkgstrap.adapters.transport.http import (
    HttpFormatError,
    build_request,
    is_complete,
    parse_response,
)
from pkgstrap.adapters.transport.negotiator import TransportChannel, TransportNegotiator
from pkgstrap.adapters.transport.programs import DEFAULT_PROGRAMS
from pkgstrap.core.errors import FetchError, TransportError
from pkgstrap.core.models.package import SourceRepository

logger = logging.getLogger(__name__)


class TransportDownloader(Downloader):
    """Fetch files through :class:`TransportNegotiator` channels."""

    def __init__(self, negotiator: TransportNegotiator):
        self._negotiator = negotiator

    @property
    def name(self) -> str:
        return "external"

    @property
    def negotiator(self) -> TransportNegotiator:
        return self._negotiator

    def is_available(self) -> bool:
        programs = self._negotiator.settings.programs or DEFAULT_PROGRAMS
        return any(shutil.which(p.split()[0]) for p in programs if p.strip())

    def fetch(self, repository: SourceRepository, filename: str) -> bytes:
        url = repository.url_for(filename)
        if repository.scheme != "https":
            raise FetchError(
                f"External transport only serves https URLs: {url}",
                repository=repository.name, url=url,
            )

        sink = bytearray()
        outcome = self._negotiator.negotiate(repository.name, sink, repository.host, repository.port)
        if not outcome.ok or outcome.channel is None:
            cause = TransportError(outcome.error, reason=outcome.reason.value if outcome.reason else "")
            raise FetchError(
                f"Cannot open TLS channel to {repository.host}:{repository.port}: {outcome.error}",
                repository=repository.name, url=url,
            ) from cause

        path = repository.path + filename.lstrip("/")
        logger.debug("GET %s via %s", url, outcome.command[:1])
        with outcome.channel as channel:
            try:
                channel.send(build_request(repository.host, path))
                self._read_response(channel)
            except TransportError as e:
                raise FetchError(f"Download of {url} failed: {e}", repository=repository.name, url=url) from e

            try:
                response = parse_response(channel.sink)
            except HttpFormatError as e:
                raise FetchError(f"Malformed response from {url}: {e}", repository=repository.name, url=url) from e

        if response.status != 200:
            raise FetchError(
                f"HTTP {response.status} {response.reason} for {url}",
                repository=repository.name, url=url,
            )
        # Without framing, the client's closing status text is indistinguishable
        # from the tail of the body.
        if not response.framed:
            raise FetchError(
                f"Response for {url} has neither Content-Length nor chunked encoding",
                repository=repository.name, url=url,
            )
        return response.body

    def _read_response(self, channel: TransportChannel) -> None:
        """Read until the response is complete, the peer closes, or time runs out."""
        settings = self._negotiator.settings
        deadline = time.monotonic() + settings.read_timeout
        while not channel.eof and not is_complete(channel.sink):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransportError(
                    f"no complete response within {settings.read_timeout}s",
                    reason="timeout",
                )
            channel.read_available(min(settings.poll_interval, remaining))
