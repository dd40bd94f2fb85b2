"""
Isolated environment — scope registry mutations to a private directory.

    with isolated_environment(registry, "29.1", root) as ctx:
        ...  # registry.state is empty, user_dir = root / "29.1"
    # registry.state holds exactly the objects it held before

The private directory is keyed by the host version, so bootstrap
artifacts of different host versions never collide.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from pkgstrap.core.registry.base import Registry, RegistryState

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._+-]")


def version_dir_name(host_version: str) -> str:
    """A filesystem-safe directory name for ``host_version``."""
    name = _UNSAFE.sub("_", host_version.strip())
    if not name.strip("."):
        raise ValueError(f"Unusable host version: {host_version!r}")
    return name


def private_dir(root: Path, host_version: str) -> Path:
    """The install directory used for ``host_version`` under ``root``."""
    return root / version_dir_name(host_version)


@dataclass
class EnvironmentContext:
    """Saved and substituted registry values of one scope."""

    saved: RegistryState
    private: RegistryState
    host_version: str

    @property
    def user_dir(self) -> Path:
        return self.private.user_dir


@contextmanager
def isolated_environment(
    registry: Registry,
    host_version: str,
    root: Path,
) -> Iterator[EnvironmentContext]:
    """Substitute ``registry.state`` with a private, empty equivalent.

    The original state object and its four values are put back on
    every exit path, including exceptions raised by the body.
    """
    original = registry.state
    saved = RegistryState(
        archives=original.archives,
        package_alist=original.package_alist,
        archive_contents=original.archive_contents,
        user_dir=original.user_dir,
    )
    user_dir = private_dir(root, host_version)
    user_dir.mkdir(parents=True, exist_ok=True)
    private = RegistryState(user_dir=user_dir)

    registry.state = private
    logger.debug("Entered isolated environment at %s", user_dir)
    try:
        yield EnvironmentContext(saved=saved, private=private, host_version=host_version)
    finally:
        original.archives = saved.archives
        original.package_alist = saved.package_alist
        original.archive_contents = saved.archive_contents
        original.user_dir = saved.user_dir
        registry.state = original
        logger.debug("Left isolated environment at %s", user_dir)
