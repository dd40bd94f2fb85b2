"""
Bootstrap configuration model — loaded from bootstrap.yml.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from pkgstrap.core.models.package import DEFAULT_REPOSITORIES, DependencySpec, SourceRepository
from pkgstrap.core.models.transport import TransportSettings


class HostConfig(BaseModel):
    """The host application whose dependencies are bootstrapped."""

    name: str = "host"
    version: str = "0"


class BootstrapConfig(BaseModel):
    """Root configuration.

    ``repositories`` is the fallback set registered only when the
    dependencies cannot be loaded from the private directory.
    """

    version: int = 1

    host: HostConfig = Field(default_factory=HostConfig)
    dependencies: list[str] = Field(default_factory=list)
    repositories: list[SourceRepository] = Field(
        default_factory=lambda: list(DEFAULT_REPOSITORIES)
    )
    root: str = "~/.pkgstrap/bootstrap"

    transport: Literal["auto", "native", "external", "mock"] = "auto"
    tls: TransportSettings = Field(default_factory=TransportSettings)

    @field_validator("repositories")
    @classmethod
    def _unique_names(cls, value: list[SourceRepository]) -> list[SourceRepository]:
        seen: set[str] = set()
        for repo in value:
            if repo.name in seen:
                raise ValueError(f"Duplicate repository name: {repo.name}")
            seen.add(repo.name)
        return value

    @property
    def bootstrap_root(self) -> Path:
        return Path(os.path.expanduser(self.root))

    def dependency_spec(self) -> DependencySpec:
        return DependencySpec(names=tuple(self.dependencies))
