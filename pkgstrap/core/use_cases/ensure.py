"""
Ensure use case — the single "make dependencies present" call.

Loads configuration, builds the collaborators, runs the orchestrator,
and turns any bootstrap failure into a structured result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pkgstrap.adapters.base import Downloader
from pkgstrap.adapters.selection import select_downloader
from pkgstrap.adapters.transport.negotiator import ConfirmFn
from pkgstrap.core.config.loader import load_config
from pkgstrap.core.errors import BootstrapError, ConfigError
from pkgstrap.core.models.config import BootstrapConfig
from pkgstrap.core.models.transport import TrustPolicy
from pkgstrap.core.registry.base import Registry
from pkgstrap.core.registry.local import LocalRegistry
from pkgstrap.core.services.orchestrator import InstallOrchestrator
from pkgstrap.core.services.refresh import RefreshReport

logger = logging.getLogger(__name__)


@dataclass
class EnsureResult:
    """Outcome of one bootstrap run."""

    ok: bool = False
    config: BootstrapConfig | None = None
    package_dir: Path | None = None
    error: str | None = None
    cause: str | None = None
    unresolved: list[str] = field(default_factory=list)
    already_present: bool = False
    installed: list[str] = field(default_factory=list)
    refresh: RefreshReport | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        result: dict[str, Any] = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
            result["cause"] = self.cause
            result["unresolved"] = self.unresolved
        if self.config:
            result["host"] = {"name": self.config.host.name, "version": self.config.host.version}
            result["dependencies"] = list(self.config.dependency_spec())
        if self.package_dir:
            result["package_dir"] = str(self.package_dir)
        result["already_present"] = self.already_present
        result["installed"] = self.installed
        if self.refresh:
            result["refresh"] = self.refresh.to_dict()
        return result


def ensure_dependencies(
    config_path: Path | None = None,
    *,
    transport: str | None = None,
    trust: str | None = None,
    confirm: ConfirmFn | None = None,
    downloader: Downloader | None = None,
    registry: Registry | None = None,
) -> EnsureResult:
    """Make the configured dependency list loadable.

    Args:
        config_path: Explicit bootstrap.yml; searched for when None.
        transport: Override the configured transport kind.
        trust: Override the configured trust policy.
        confirm: Callback used when the trust policy is ``ask``.
        downloader: Use this downloader instead of building one.
        registry: Use this registry instead of a fresh LocalRegistry.

    Returns:
        EnsureResult. Never raises for bootstrap, config or local
        filesystem failures.
    """
    result = EnsureResult()

    try:
        config = load_config(config_path)
        updates: dict[str, Any] = {}
        if transport:
            updates["transport"] = transport
        if trust:
            updates["tls"] = config.tls.model_copy(update={"trust_policy": TrustPolicy(trust)})
        if updates:
            config = BootstrapConfig.model_validate({**config.model_dump(), **updates})
    except ConfigError as e:
        result.error = str(e)
        return result
    except ValueError as e:
        result.error = f"Invalid override: {e}"
        return result

    result.config = config

    orchestrator: InstallOrchestrator | None = None
    try:
        if downloader is None:
            downloader = select_downloader(config.transport, config.tls, confirm)
        orchestrator = InstallOrchestrator(
            registry=registry or LocalRegistry(),
            downloader=downloader,
            host_version=config.host.version,
            bootstrap_root=config.bootstrap_root,
            repositories=config.repositories,
        )
        result.package_dir = orchestrator.package_dir
        outcome = orchestrator.ensure(config.dependency_spec())
    except BootstrapError as e:
        result.error = str(e)
        result.cause = str(e.__cause__) if e.__cause__ else None
        result.unresolved = e.unresolved
        result.refresh = orchestrator.last_refresh if orchestrator else None
        return result
    except (ValueError, OSError) as e:
        # Unusable host version, or a bootstrap root / archive cache that
        # cannot be created or written.
        logger.warning("Dependency bootstrap aborted: %s", e)
        result.error = f"Dependency bootstrap aborted: {e}"
        result.cause = type(e).__name__
        result.refresh = orchestrator.last_refresh if orchestrator else None
        return result

    result.ok = True
    result.already_present = outcome.already_present
    result.installed = outcome.installed
    result.refresh = outcome.refresh
    return result
