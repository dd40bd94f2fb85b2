"""
External TLS clients — candidate command lines, output markers, trust files.

The clients expose their protocol only as human-readable text. gnutls-cli
interleaves it with the data on stdout; ``openssl s_client -brief`` keeps
stdout for data and writes a short summary to stderr. The negotiator
scans both streams for these patterns.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


# ── Candidate command templates (priority order) ─────────────────
#   %h host   %p port   %t trust file   %% literal percent
#
# s_client runs with -brief: the verbose form prints session tickets and
# "read R BLOCK" into the data stream after the handshake.

DEFAULT_PROGRAMS: tuple[str, ...] = (
    "gnutls-cli --x509cafile %t -p %p %h",
    "gnutls-cli -p %p %h",
    "openssl s_client -connect %h:%p -servername %h -verify_hostname %h"
    " -CAfile %t -brief -nocommands -ign_eof",
    "openssl s_client -connect %h:%p -servername %h -verify_hostname %h"
    " -brief -nocommands -ign_eof",
)


# ── Output markers ───────────────────────────────────────────────

SUCCESS_MARKER = re.compile(
    rb"- Handshake was completed|SSL handshake has read |^CONNECTION ESTABLISHED\n",
    re.MULTILINE,
)

# gnutls: data follows "- Simple Client Mode:" plus blank lines.
# s_client verbose: "---" right after the first "Verify return code" line,
#   unindented on TLS 1.3, inside the indented session block before that.
# s_client -brief: the "Verification" line closes the stderr summary.
END_OF_INFO_MARKER = re.compile(
    rb"(?:^- Simple Client Mode:\n"
    rb"(?:\n|^\*\*\* Starting TLS handshake\n)*"
    rb"|^(?:    )?Verify return code: .+\n"
    rb"(?:^    Extended master secret: .+\n)?"
    rb"(?:^    Max Early Data: .+\n)?"
    rb"---\n"
    rb"|^Peer certificate: .*\n"
    rb"(?:.*\n)*?"
    rb"^Verification(?: error)?: .*\n)",
    re.MULTILINE,
)

# X509_V_ERR_HOSTNAME_MISMATCH is 62; it counts as a host mismatch only.
UNTRUSTED_MARKER = re.compile(
    rb"- Peer's certificate is NOT trusted"
    rb"|The certificate is NOT trusted"
    rb"|Verify return code: (?!0 |62 )\d+"
    rb"|^Verification error: (?!hostname mismatch)"
    rb"|^verify error:num=(?!62:)\d+",
    re.MULTILINE,
)

HOST_MISMATCH_MARKER = re.compile(
    rb"The hostname in the certificate does NOT match"
    rb"|The name in the certificate does not match"
    rb"|Verify return code: 62 "
    rb"|^Verification error: hostname mismatch"
    rb"|^verify error:num=62:",
    re.MULTILINE,
)


@dataclass(frozen=True)
class Markers:
    """The pattern set one negotiator scans with."""

    success: re.Pattern[bytes] = SUCCESS_MARKER
    end_of_info: re.Pattern[bytes] = END_OF_INFO_MARKER
    untrusted: re.Pattern[bytes] = UNTRUSTED_MARKER
    host_mismatch: re.Pattern[bytes] = HOST_MISMATCH_MARKER


# ── Trust files ──────────────────────────────────────────────────

_SYSTEM_TRUST_FILES: tuple[str, ...] = (
    "/etc/ssl/certs/ca-certificates.crt",       # Debian / Ubuntu / Alpine
    "/etc/pki/tls/certs/ca-bundle.crt",         # Fedora / RHEL
    "/etc/ssl/ca-bundle.pem",                   # openSUSE
    "/etc/ssl/cert.pem",                        # macOS / BSD
    "/usr/local/share/certs/ca-root-nss.crt",   # FreeBSD ports
)


def find_trust_file(configured: list[str] | None = None) -> Path | None:
    """Return the first existing CA bundle.

    Search order: configured paths, ``SSL_CERT_FILE``, the interpreter's
    default verify path (when the interpreter has ``ssl``), then well-known
    system locations.
    """
    candidates: list[str] = list(configured or [])
    env_file = os.environ.get("SSL_CERT_FILE")
    if env_file:
        candidates.append(env_file)
    default_cafile = _interpreter_cafile()
    if default_cafile:
        candidates.append(default_cafile)
    candidates.extend(_SYSTEM_TRUST_FILES)

    for raw in candidates:
        path = Path(os.path.expanduser(raw))
        if path.is_file():
            return path
    return None


def _interpreter_cafile() -> str | None:
    # The external transport exists for interpreters built without ssl.
    try:
        import ssl
    except ImportError:
        logger.debug("ssl module unavailable, skipping interpreter CA path")
        return None
    return ssl.get_default_verify_paths().cafile


# ── Command templating ───────────────────────────────────────────

_PLACEHOLDER = re.compile(r"%([%htp])")


def needs_trust_file(template: str) -> bool:
    """Whether a template references the trust file (``%t``)."""
    return any(m.group(1) == "t" for m in _PLACEHOLDER.finditer(template))


def build_command(
    template: str,
    host: str,
    port: int,
    trust_file: Path | None = None,
) -> list[str]:
    """Expand a command template into an argv list.

    Raises:
        ValueError: If the template references ``%t`` and no trust file
            is available.
    """
    if trust_file is None and needs_trust_file(template):
        raise ValueError(f"No trust file available for template: {template}")

    values = {
        "%": "%",
        "h": host,
        "p": str(port),
        "t": str(trust_file) if trust_file else "",
    }
    return [
        _PLACEHOLDER.sub(lambda m: values[m.group(1)], token)
        for token in shlex.split(template)
    ]
