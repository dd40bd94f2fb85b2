"""Package registry — global package state, local installs, loading."""

from pkgstrap.core.registry.base import Registry, RegistryState
from pkgstrap.core.registry.loader import PackageLoader
from pkgstrap.core.registry.local import LocalRegistry, parse_index

__all__ = [
    "LocalRegistry",
    "PackageLoader",
    "Registry",
    "RegistryState",
    "parse_index",
]
