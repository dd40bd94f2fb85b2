"""
Package store — on-disk layout of a bootstrap install directory.

    <user_dir>/
        <name>-<version>/pkgstrap-pkg.json    one per installed package
        archives/<repo>/<index file>         raw index as fetched

Writes are atomic (write to temp file, then rename) so an interrupted
bootstrap never leaves a half-written descriptor or index behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pkgstrap.core.models.package import INDEX_FILENAMES, PackageDesc

logger = logging.getLogger(__name__)

DESCRIPTOR_FILE = "pkgstrap-pkg.json"
INDEX_FILE = INDEX_FILENAMES["json"]
ARCHIVES_DIR = "archives"


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".pkgstrap_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(fd, "wb") as fh:
            fh.write(data)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to write %s", path)
        raise


def index_path(user_dir: Path, archive: str, filename: str = INDEX_FILE) -> Path:
    """Where the raw index of ``archive`` is stored."""
    return user_dir / ARCHIVES_DIR / archive / filename


def save_index(user_dir: Path, archive: str, raw: bytes, filename: str = INDEX_FILE) -> Path:
    """Persist a fetched index verbatim."""
    path = index_path(user_dir, archive, filename)
    atomic_write_bytes(path, raw)
    logger.debug("Stored %d-byte index for '%s' at %s", len(raw), archive, path)
    return path


def write_descriptor(desc: PackageDesc, directory: Path) -> Path:
    """Record ``desc`` inside its install directory."""
    data = desc.model_dump(mode="json", exclude={"directory"})
    path = directory / DESCRIPTOR_FILE
    atomic_write_bytes(path, (json.dumps(data, indent=2) + "\n").encode("utf-8"))
    return path


def scan_installed(user_dir: Path) -> dict[str, PackageDesc]:
    """Find installed packages under ``user_dir``.

    When several versions of one package are present the highest wins.
    Unreadable descriptors are skipped with a warning.
    """
    found: dict[str, PackageDesc] = {}
    if not user_dir.is_dir():
        return found

    for descriptor in sorted(user_dir.glob(f"*/{DESCRIPTOR_FILE}")):
        try:
            data = json.loads(descriptor.read_text(encoding="utf-8"))
            desc = PackageDesc.model_validate(data)
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable package descriptor %s: %s", descriptor, e)
            continue
        desc.directory = descriptor.parent
        current = found.get(desc.name)
        if current is None or desc.version_key() > current.version_key():
            found[desc.name] = desc

    return found
