"""
Error taxonomy for the bootstrap core.

Transport-level errors are absorbed at or below the refresh step.
Only PackageInstallError and BootstrapError escape the orchestrator.
"""

from __future__ import annotations

from typing import Sequence


class PkgstrapError(Exception):
    """Base class for every error raised by pkgstrap."""


class ConfigError(PkgstrapError):
    """Raised when bootstrap configuration is invalid or unreadable."""


class TransportError(PkgstrapError):
    """A secure channel could not be negotiated."""

    def __init__(self, message: str, reason: str = "handshake"):
        super().__init__(message)
        self.reason = reason


class FetchError(PkgstrapError):
    """A download from a source repository could not complete."""

    def __init__(self, message: str, repository: str = "", url: str = ""):
        super().__init__(message)
        self.repository = repository
        self.url = url


class IndexFormatError(PkgstrapError):
    """A repository index could not be parsed."""


class PackageLoadError(PkgstrapError):
    """A dependency could not be loaded from the install directory."""

    def __init__(self, name: str, message: str = ""):
        super().__init__(message or f"Cannot load package '{name}'")
        self.name = name


class BootstrapError(PkgstrapError):
    """Dependency bootstrap could not complete.

    ``unresolved`` names the dependencies still missing; the underlying
    cause is chained as ``__cause__``.
    """

    def __init__(self, message: str, unresolved: Sequence[str] = ()):
        super().__init__(message)
        self.unresolved = list(unresolved)

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__


class PackageInstallError(BootstrapError):
    """A specific package could not be installed after refresh."""

    def __init__(self, name: str, message: str = ""):
        super().__init__(message or f"Package '{name}' is unavailable", [name])
        self.name = name
