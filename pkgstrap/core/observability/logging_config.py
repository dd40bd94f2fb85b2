"""
Logging configuration — one call at CLI startup.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides where records go and how they look.

Console level, highest precedence first:
    --debug  >  --verbose  >  --quiet  >  PKGSTRAP_LOG_LEVEL  >  WARNING

A log file is added when PKGSTRAP_LOG_FILE is set. Its level comes from
PKGSTRAP_LOG_FILE_LEVEL, else it follows the console level.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

LEVEL_ENV = "PKGSTRAP_LOG_LEVEL"
FILE_ENV = "PKGSTRAP_LOG_FILE"
FILE_LEVEL_ENV = "PKGSTRAP_LOG_FILE_LEVEL"

# ── Formats by console level ────────────────────────────────────
#   (upper bound, format, datefmt)

_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level name from CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(LEVEL_ENV) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Console level name.
        log_file: Optional path of an extra, always-detailed log file.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt, datefmt = _console_format(console_level)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    root.addHandler(console)

    root_level = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def setup_from_env(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Configure logging from CLI flags plus PKGSTRAP_LOG_* variables.

    Returns:
        The console level name in effect.
    """
    env = os.environ if environ is None else environ
    level = resolve_level(debug=debug, verbose=verbose, quiet=quiet, environ=env)
    setup_logging(level, log_file=env.get(FILE_ENV), log_file_level=env.get(FILE_LEVEL_ENV))
    return level


def _console_format(level: int) -> tuple[str, str | None]:
    for bound, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= bound:
            return fmt, datefmt
    return "%(message)s", None


def _parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
