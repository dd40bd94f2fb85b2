"""
Package models — dependency lists, source repositories, package descriptors.

A DependencySpec is the fixed list of names a bootstrap run must make
loadable. SourceRepository identifies a package index and the format it is
published in. PackageDesc is one entry from an index, or one installed
package.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class DependencySpec:
    """Ordered, de-duplicated, immutable list of required package names."""

    names: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        seen: dict[str, None] = {}
        for name in self.names:
            name = str(name).strip()
            if name:
                seen.setdefault(name, None)
        object.__setattr__(self, "names", tuple(seen))

    @classmethod
    def of(cls, *names: str) -> DependencySpec:
        return cls(names=tuple(names))

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)

    def __contains__(self, name: object) -> bool:
        return name in self.names


IndexFormat = Literal["json", "elpa"]

# Index file each format is published under, relative to the base URL
INDEX_FILENAMES: dict[str, str] = {
    "json": "archive-contents.json",
    "elpa": "archive-contents",
}


class SourceRepository(BaseModel):
    """A named package index. Unique by name."""

    model_config = ConfigDict(frozen=True)

    name: str
    base_url: str
    index_format: IndexFormat = "json"

    @field_validator("base_url")
    @classmethod
    def _trailing_slash(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Repository URL must be http(s) with a host: {value!r}")
        return value if value.endswith("/") else value + "/"

    @property
    def scheme(self) -> str:
        return urlsplit(self.base_url).scheme

    @property
    def host(self) -> str:
        return urlsplit(self.base_url).hostname or ""

    @property
    def port(self) -> int:
        parts = urlsplit(self.base_url)
        if parts.port:
            return parts.port
        return 443 if parts.scheme == "https" else 80

    @property
    def path(self) -> str:
        return urlsplit(self.base_url).path or "/"

    @property
    def index_filename(self) -> str:
        return INDEX_FILENAMES[self.index_format]

    def url_for(self, filename: str) -> str:
        """Absolute URL of a file served by this repository."""
        return self.base_url + filename.lstrip("/")


# Fixed fallback set registered only when local loading fails.
# Both publish the Lisp "archive-contents" index.
DEFAULT_REPOSITORIES: tuple[SourceRepository, ...] = (
    SourceRepository(name="gnu", base_url="https://elpa.gnu.org/packages/", index_format="elpa"),
    SourceRepository(name="melpa", base_url="https://melpa.org/packages/", index_format="elpa"),
)

_VERSION_PART = re.compile(r"\d+|[A-Za-z]+")

# Pre-release words sort below a release; unknown words below those
_PRERELEASE = {"snapshot": -4, "alpha": -3, "beta": -2, "pre": -1, "rc": -1}
_KEY_WIDTH = 16


class PackageDesc(BaseModel):
    """One package, as described by an index or found on disk."""

    name: str
    version: str
    kind: Literal["tar", "single"] = "tar"
    summary: str = ""
    requires: list[str] = Field(default_factory=list)   # informational only
    archive: str = ""                                   # repository name
    directory: Path | None = None                       # set once installed
    filename: str = ""                                  # archive name, when the index fixes it

    @property
    def full_name(self) -> str:
        return f"{self.name}-{self.version}"

    @property
    def archive_filename(self) -> str:
        """Filename of the package archive in its repository."""
        if self.filename:
            return self.filename
        suffix = ".tar" if self.kind == "tar" else ".py"
        return f"{self.full_name}{suffix}"

    def version_key(self) -> tuple:
        """Sort key for versions like "2.19.1", "20240102.1200" or "1.0beta3".

        Numeric parts compare numerically and missing parts count as 0.
        """
        key = [
            int(part) if part.isdigit() else _PRERELEASE.get(part.lower(), -5)
            for part in _VERSION_PART.findall(self.version)
        ]
        key.extend([0] * (_KEY_WIDTH - len(key)))
        return tuple(key)
