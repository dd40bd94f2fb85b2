"""
ELPA index reader — the ``archive-contents`` file GNU ELPA and MELPA serve.

The file is a single Lisp form::

    (1
     (dash . [(2 19 1) ((emacs (24))) "A modern list library" tar
              ((:url . "https://github.com/magnars/dash.el"))])
     (f . [(0 20 0) nil "Modern API for working with files" single nil]))

The leading 1 is the format version. Every other element pairs a package
symbol with a vector of version list, requirements, summary, kind
(``tar`` or ``single``) and an optional property list. Only the subset of
Lisp syntax those files use is read: lists, dotted pairs, vectors,
strings, integers and symbols.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from pkgstrap.core.errors import IndexFormatError
from pkgstrap.core.models.package import PackageDesc

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

_TOKEN = re.compile(
    r"""
      (?P<space>\s+|;[^\n]*)
    | (?P<open>[(\[])
    | (?P<close>[)\]])
    | (?P<string>"(?:[^"\\]|\\.)*")
    | (?P<atom>[^\s()\[\]";]+)
    """,
    re.VERBOSE | re.DOTALL,
)

_INTEGER = re.compile(r"[+-]?\d+")
_STRING_ESCAPE = re.compile(r"\\(\n|.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "\n": ""}

# Negative version components, as Emacs writes them
_VERSION_WORDS = {-1: "pre", -2: "beta", -3: "alpha", -4: "snapshot"}


class Symbol(str):
    """A Lisp symbol, kept apart from strings."""


@dataclass(frozen=True)
class Pair:
    """A dotted pair ``(car . cdr)``."""

    car: Any
    cdr: Any


class ReadError(ValueError):
    """Raised for text that is not a readable form."""


# ── Reader ───────────────────────────────────────────────────────


def read_form(text: str) -> Any:
    """Read exactly one form from ``text``.

    Lists become Python lists, vectors tuples, ``nil`` None, dotted
    pairs :class:`Pair`.
    """
    tokens = list(_tokenize(text))
    if not tokens:
        raise ReadError("empty input")
    form, pos = _read(tokens, 0)
    if pos != len(tokens):
        raise ReadError(f"unexpected {tokens[pos][1]!r} after the first form")
    return form


def _tokenize(text: str):
    pos = 0
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None:
            raise ReadError(f"unreadable input at offset {pos}: {text[pos:pos + 20]!r}")
        pos = match.end()
        kind = match.lastgroup
        if kind != "space":
            yield kind, match.group()


def _read(tokens: list[tuple[str, str]], pos: int) -> tuple[Any, int]:
    kind, value = tokens[pos]
    if kind == "open":
        return _read_sequence(tokens, pos + 1, value)
    if kind == "close":
        raise ReadError(f"unbalanced {value!r}")
    if kind == "string":
        return _STRING_ESCAPE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), value[1:-1]), pos + 1
    if _INTEGER.fullmatch(value):
        return int(value), pos + 1
    if value == "nil":
        return None, pos + 1
    return Symbol(value), pos + 1


def _read_sequence(tokens: list[tuple[str, str]], pos: int, opener: str) -> tuple[Any, int]:
    closer = ")" if opener == "(" else "]"
    items: list[Any] = []
    while True:
        if pos >= len(tokens):
            raise ReadError(f"missing {closer!r}")
        kind, value = tokens[pos]
        if kind == "close":
            if value != closer:
                raise ReadError(f"expected {closer!r}, got {value!r}")
            return (items if opener == "(" else tuple(items)), pos + 1
        if opener == "(" and kind == "atom" and value == "." and items:
            if pos + 1 >= len(tokens):
                raise ReadError("malformed dotted pair")
            cdr, pos = _read(tokens, pos + 1)
            if pos >= len(tokens) or tokens[pos] != ("close", ")"):
                raise ReadError("malformed dotted pair")
            car = items[0] if len(items) == 1 else items
            return Pair(car, cdr), pos + 1
        item, pos = _read(tokens, pos)
        items.append(item)


# ── archive-contents ─────────────────────────────────────────────


def version_string(parts: Any) -> str:
    """Render an ELPA version list the way Emacs does: (1 0 -2 3) → "1.0beta3"."""
    if not isinstance(parts, list) or not parts or not all(isinstance(p, int) for p in parts):
        raise ValueError(f"bad version list: {parts!r}")
    out = str(parts[0])
    previous_numeric = True
    for part in parts[1:]:
        if part >= 0:
            out += ("." if previous_numeric else "") + str(part)
            previous_numeric = True
        elif part in _VERSION_WORDS:
            out += _VERSION_WORDS[part]
            previous_numeric = False
        else:
            raise ValueError(f"bad version component {part} in {parts!r}")
    return out


def parse_archive_contents(raw: bytes, archive: str) -> list[PackageDesc]:
    """Decode an ``archive-contents`` payload into descriptions tagged with ``archive``.

    Raises:
        IndexFormatError: If the payload is not a version-1 archive-contents form.
    """
    try:
        form = read_form(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise IndexFormatError(f"Index of '{archive}' is not UTF-8: {e}") from e
    except ReadError as e:
        raise IndexFormatError(f"Index of '{archive}' is not a Lisp form: {e}") from e

    if not isinstance(form, list) or not form or form[0] != FORMAT_VERSION:
        raise IndexFormatError(
            f"Index of '{archive}' is not archive-contents version {FORMAT_VERSION}"
        )

    entries: list[PackageDesc] = []
    for item in form[1:]:
        if not isinstance(item, Pair) or not isinstance(item.car, Symbol):
            raise IndexFormatError(f"Index of '{archive}': malformed entry {item!r}")
        entries.append(_describe(item.car, item.cdr, archive))
    logger.debug("Read %d archive-contents entries for '%s'", len(entries), archive)
    return entries


def _describe(name: str, fields: Any, archive: str) -> PackageDesc:
    if not isinstance(fields, tuple) or len(fields) < 4:
        raise IndexFormatError(f"Index of '{archive}': entry '{name}' is not a package vector")
    version_list, requirements, summary, kind = fields[:4]
    try:
        version = version_string(version_list)
    except ValueError as e:
        raise IndexFormatError(f"Index of '{archive}': entry '{name}': {e}") from e
    if kind not in ("tar", "single"):
        raise IndexFormatError(f"Index of '{archive}': entry '{name}' has unknown kind {kind!r}")

    requires = [
        str(req[0]) for req in (requirements or [])
        if isinstance(req, list) and req and isinstance(req[0], Symbol)
    ]
    suffix = ".tar" if kind == "tar" else ".el"
    return PackageDesc(
        name=str(name),
        version=version,
        kind=str(kind),
        summary=summary if isinstance(summary, str) and not isinstance(summary, Symbol) else "",
        requires=requires,
        archive=archive,
        filename=f"{name}-{version}{suffix}",
    )
