"""
Local registry — repository indexes and filesystem installs.

Two index formats are read. ``elpa`` is the Lisp ``archive-contents``
file (see :mod:`pkgstrap.core.registry.elpa`). ``json``
(``archive-contents.json``) is::

    {"packages": {"<name>": {"version": "1.2.0", "kind": "tar",
                             "summary": "...", "requires": ["other"]}}}

A bare ``{"<name>": {...}}`` mapping is accepted too.

Archives are ``<name>-<version>.tar`` (unpacked into
``<user_dir>/<name>-<version>/``) or a single file, ``<name>-<version>.py``
or ``.el`` for ELPA (stored as ``<user_dir>/<name>-<version>/<name>.<ext>``).
"""

from __future__ import annotations

import io
import json
import logging
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pkgstrap.adapters.base import Downloader
from pkgstrap.core.errors import FetchError, IndexFormatError, PackageInstallError
from pkgstrap.core.models.package import PackageDesc
from pkgstrap.core.persistence.package_store import (
    INDEX_FILE,
    save_index,
    scan_installed,
    write_descriptor,
)
from pkgstrap.core.registry.base import Registry
from pkgstrap.core.registry.elpa import parse_archive_contents

logger = logging.getLogger(__name__)


class LocalRegistry(Registry):
    """Registry backed by a plain install directory."""

    def initialize(self) -> None:
        self.state.package_alist = scan_installed(self.state.user_dir)
        logger.debug(
            "Registry initialized from %s: %d package(s)",
            self.state.user_dir, len(self.state.package_alist),
        )

    def merge_index(self, archive: str, raw: bytes) -> int:
        repository = self.repository(archive)
        index_format = repository.index_format if repository else "json"
        entries = parse_index(raw, archive, index_format)
        contents = self.state.archive_contents
        for desc in entries:
            current = contents.get(desc.name)
            if current is None or desc.version_key() > current.version_key():
                contents[desc.name] = desc
        save_index(
            self.state.user_dir, archive, raw,
            repository.index_filename if repository else INDEX_FILE,
        )
        logger.info("Archive '%s': %d package(s) in index", archive, len(entries))
        return len(entries)

    def install(self, name: str, downloader: Downloader) -> PackageDesc:
        desc = self.describe(name)
        if desc is None:
            archives = ", ".join(self.state.archives) or "none"
            raise PackageInstallError(
                name, f"Package '{name}' is unavailable (archives: {archives})",
            )

        repository = self.repository(desc.archive)
        if repository is None:
            raise PackageInstallError(name, f"Archive '{desc.archive}' for '{name}' is not registered")

        try:
            payload = downloader.fetch(repository, desc.archive_filename)
        except FetchError as e:
            raise PackageInstallError(name, f"Cannot download '{desc.full_name}': {e}") from e

        user_dir = self.state.user_dir
        user_dir.mkdir(parents=True, exist_ok=True)
        target = user_dir / desc.full_name
        try:
            if desc.kind == "tar":
                _unpack_tar(payload, target)
            else:
                _store_single(payload, target, name + Path(desc.archive_filename).suffix)
            installed = desc.model_copy(update={"directory": target})
            write_descriptor(installed, target)
        except (tarfile.TarError, OSError) as e:
            shutil.rmtree(target, ignore_errors=True)
            raise PackageInstallError(name, f"Cannot unpack '{desc.full_name}': {e}") from e

        self.state.package_alist[name] = installed
        logger.info("Installed %s from '%s'", desc.full_name, desc.archive)
        return installed


def parse_index(raw: bytes, archive: str, index_format: str = "json") -> list[PackageDesc]:
    """Decode an index payload into package descriptions tagged with ``archive``."""
    if index_format == "elpa":
        return parse_archive_contents(raw, archive)

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IndexFormatError(f"Index of '{archive}' is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise IndexFormatError(f"Index of '{archive}' must be a mapping, got {type(data).__name__}")
    packages: Any = data.get("packages", data)
    if not isinstance(packages, dict):
        raise IndexFormatError(f"Index of '{archive}' has no package mapping")

    entries: list[PackageDesc] = []
    for name, fields in packages.items():
        if not isinstance(fields, dict):
            raise IndexFormatError(f"Index of '{archive}': entry '{name}' must be a mapping")
        try:
            entries.append(PackageDesc.model_validate({**fields, "name": name, "archive": archive}))
        except ValidationError as e:
            raise IndexFormatError(f"Index of '{archive}': bad entry '{name}': {e}") from e
    return entries


def _unpack_tar(payload: bytes, target: Path) -> None:
    """Extract a package tar into ``target``.

    A tar holding a single top-level directory is flattened into
    ``target``; anything else is extracted as-is.
    """
    staging = Path(tempfile.mkdtemp(dir=target.parent, prefix=".staging-"))
    try:
        with tarfile.open(fileobj=io.BytesIO(payload)) as tar:
            tar.extractall(staging, filter="data")
        entries = list(staging.iterdir())
        root = entries[0] if len(entries) == 1 and entries[0].is_dir() else staging
        if target.exists():
            shutil.rmtree(target)
        shutil.move(str(root), str(target))
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def _store_single(payload: bytes, target: Path, filename: str) -> None:
    target.mkdir(parents=True, exist_ok=True)
    (target / filename).write_bytes(payload)
