"""
Domain models for the bootstrapper.

All models are re-exported here for convenient access:

    from pkgstrap.core.models import DependencySpec, SourceRepository, TrustPolicy
"""

from pkgstrap.core.models.config import BootstrapConfig, HostConfig
from pkgstrap.core.models.package import (
    DEFAULT_REPOSITORIES,
    DependencySpec,
    PackageDesc,
    SourceRepository,
)
from pkgstrap.core.models.transport import (
    FailureReason,
    SessionState,
    TransportSettings,
    TrustPolicy,
)

__all__ = [
    # config.py
    "BootstrapConfig",
    "HostConfig",
    # package.py
    "DEFAULT_REPOSITORIES",
    "DependencySpec",
    "PackageDesc",
    "SourceRepository",
    # transport.py
    "FailureReason",
    "SessionState",
    "TransportSettings",
    "TrustPolicy",
]
