"""
Configuration loader — reads bootstrap.yml into a BootstrapConfig.

Precedence for the overridable keys:
    explicit argument  >  PKGSTRAP_* env var  >  bootstrap.yml  >  default
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from pkgstrap.core.errors import ConfigError
from pkgstrap.core.models.config import BootstrapConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "bootstrap.yml"

# Environment overrides → (section, key)
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "PKGSTRAP_HOST_VERSION": ("host", "version"),
    "PKGSTRAP_ROOT": (None, "root"),
    "PKGSTRAP_TRUST": ("tls", "trust_policy"),
    "PKGSTRAP_TRANSPORT": (None, "transport"),
}


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for bootstrap.yml starting from the given directory, walking up.

    Returns:
        Path to bootstrap.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(
    path: Path | None = None,
    *,
    search: bool = True,
    environ: dict[str, str] | None = None,
) -> BootstrapConfig:
    """Load and validate bootstrap configuration.

    Args:
        path: Explicit path to bootstrap.yml. Must exist if given.
        search: When no path is given, look upward from cwd. If nothing
            is found the built-in defaults are used.
        environ: Environment to read overrides from (default: os.environ).

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    if path is None and search:
        path = find_config_file()

    if path is not None:
        data = _read_yaml(path)
    else:
        logger.debug("No %s found, using defaults", CONFIG_FILE)

    for var, (section, key) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if not value:
            continue
        target = data.setdefault(section, {}) if section else data
        if not isinstance(target, dict):
            raise ConfigError(f"Cannot apply {var}: '{section}' is not a mapping")
        target[key] = value

    try:
        config = BootstrapConfig.model_validate(data)
    except ValidationError as e:
        where = path or "defaults"
        raise ConfigError(f"Invalid bootstrap configuration ({where}): {e}") from e

    logger.info(
        "Loaded bootstrap config for %s %s with %d dependencies",
        config.host.name, config.host.version, len(config.dependencies),
    )
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading bootstrap config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "bootstrap" key or be flat
    if "bootstrap" in data:
        data = data["bootstrap"] or {}
        if not isinstance(data, dict):
            raise ConfigError(f"'bootstrap' in {path} must be a mapping")
    return data
