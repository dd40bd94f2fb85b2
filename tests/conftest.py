"""
Shared test fixtures and configuration.
"""

import io
import json
import shlex
import sys
import tarfile
import textwrap
from pathlib import Path

import pytest

from pkgstrap.core.models.transport import TransportSettings

# A stand-in for gnutls-cli / openssl s_client. Reads a JSON scenario,
# prints its chunks, optionally answers one HTTP request from stdin.
# A chunk is a string for stdout or {"stderr": text} for stderr.
_FAKE_CLIENT = textwrap.dedent('''\
    import json
    import os
    import sys
    import time

    scenario = json.load(open(sys.argv[1]))
    host, port = sys.argv[2], sys.argv[3]
    if scenario.get("pid_file"):
        with open(scenario["pid_file"], "w") as fh:
            fh.write(str(os.getpid()))
    if scenario.get("exit_code") is not None and not scenario.get("chunks"):
        sys.exit(scenario["exit_code"])

    def emit(chunk):
        stream = sys.stdout.buffer
        if isinstance(chunk, dict):
            stream, chunk = sys.stderr.buffer, chunk["stderr"]
        stream.write(chunk.replace("{host}", host).replace("{port}", port).encode("latin-1"))
        stream.flush()

    for chunk in scenario.get("chunks", []):
        emit(chunk)
        time.sleep(scenario.get("chunk_delay", 0))

    if scenario.get("response") is not None:
        request = b""
        while b"\\r\\n\\r\\n" not in request:
            byte = sys.stdin.buffer.read(1)
            if not byte:
                break
            request += byte
        if scenario.get("request_log"):
            with open(scenario["request_log"], "wb") as fh:
                fh.write(request)
        emit(scenario["response"])
        for chunk in scenario.get("after", []):
            emit(chunk)
        sys.exit(0)

    if scenario.get("hang"):
        time.sleep(60)
    sys.exit(scenario.get("exit_code") or 0)
''')


GNUTLS_HANDSHAKE = (
    "Processed 140 CA certificate(s).\n"
    "Resolving '{host}:{port}'...\n"
    "Connecting to '127.0.0.1:{port}'...\n"
    "- Certificate type: X.509\n"
    "- Handshake was completed\n"
    "\n"
    "- Simple Client Mode:\n"
    "\n"
)

# OpenSSL 3.0 "s_client -connect" against a TLS 1.3 server, stdout only.
# The first block ends with an unindented "Verify return code".
OPENSSL_HANDSHAKE = (
    "CONNECTED(00000003)\n"
    "---\n"
    "Certificate chain\n"
    " 0 s:CN = {host}\n"
    "   i:C = US, O = Let's Encrypt, CN = R3\n"
    "   a:PKEY: id-ecPublicKey, 256 (bit); sigalg: RSA-SHA256\n"
    "   v:NotBefore: Sep  1 00:00:00 2026 GMT; NotAfter: Nov 30 23:59:59 2026 GMT\n"
    "---\n"
    "Server certificate\n"
    "-----BEGIN CERTIFICATE-----\n"
    "MIIEJjCCAw6gAwIBAgISA0NlcnRpZmljYXRlIGJvZHk=\n"
    "-----END CERTIFICATE-----\n"
    "subject=CN = {host}\n"
    "issuer=C = US, O = Let's Encrypt, CN = R3\n"
    "---\n"
    "No client certificate CA names sent\n"
    "Peer signing digest: SHA256\n"
    "Peer signature type: ECDSA\n"
    "Server Temp Key: X25519, 253 bits\n"
    "---\n"
    "SSL handshake has read 2742 bytes and written 394 bytes\n"
    "Verification: OK\n"
    "---\n"
    "New, TLSv1.3, Cipher is TLS_AES_256_GCM_SHA384\n"
    "Server public key is 256 bit\n"
    "Secure Renegotiation IS NOT supported\n"
    "Compression: NONE\n"
    "Expansion: NONE\n"
    "No ALPN negotiated\n"
    "Early data was not sent\n"
    "Verify return code: 0 (ok)\n"
    "---\n"
)

# What OpenSSL 3.0 s_client prints once the TLS 1.3 session ticket
# arrives, after the block above.
OPENSSL_TICKET = (
    "---\n"
    "Post-Handshake New Session Ticket arrived:\n"
    "SSL-Session:\n"
    "    Protocol  : TLSv1.3\n"
    "    Cipher    : TLS_AES_256_GCM_SHA384\n"
    "    Session-ID: 5D3C0A4B6E7F8091A2B3C4D5E6F708192A3B4C5D6E7F8091A2B3C4D5E6F70819\n"
    "    Session-ID-ctx: \n"
    "    Resumption PSK: 0F1E2D3C4B5A69788796A5B4C3D2E1F00F1E2D3C4B5A69788796A5B4C3D2E1F0\n"
    "    PSK identity: None\n"
    "    PSK identity hint: None\n"
    "    SRP username: None\n"
    "    TLS session ticket lifetime hint: 7200 (seconds)\n"
    "    Start Time: 1791849600\n"
    "    Timeout   : 7200 (sec)\n"
    "    Verify return code: 0 (ok)\n"
    "    Extended master secret: no\n"
    "    Max Early Data: 0\n"
    "---\n"
    "read R BLOCK\n"
)

# OpenSSL 3.0 "s_client -brief -verify_hostname": the summary goes to
# stderr, stdout carries only application data.
OPENSSL_BRIEF = (
    "CONNECTION ESTABLISHED\n"
    "Protocol version: TLSv1.3\n"
    "Ciphersuite: TLS_AES_256_GCM_SHA384\n"
    "Peer certificate: CN = {host}\n"
    "Hash used: SHA256\n"
    "Signature type: ECDSA\n"
    "Verification: OK\n"
    "Verified peername: {host}\n"
    "Server Temp Key: X25519, 253 bits\n"
)

OPENSSL_BRIEF_SELF_SIGNED = (
    "depth=0 CN = {host}\n"
    "verify error:num=18:self-signed certificate\n"
    "verify return:1\n"
    "CONNECTION ESTABLISHED\n"
    "Protocol version: TLSv1.3\n"
    "Ciphersuite: TLS_AES_256_GCM_SHA384\n"
    "Peer certificate: CN = {host}\n"
    "Hash used: SHA256\n"
    "Signature type: RSA-PSS\n"
    "Verification error: self-signed certificate\n"
    "Server Temp Key: X25519, 253 bits\n"
)

OPENSSL_BRIEF_WRONG_HOST = (
    "depth=0 CN = other.test\n"
    "verify error:num=62:hostname mismatch\n"
    "verify return:1\n"
    "CONNECTION ESTABLISHED\n"
    "Protocol version: TLSv1.3\n"
    "Ciphersuite: TLS_AES_256_GCM_SHA384\n"
    "Peer certificate: CN = other.test\n"
    "Hash used: SHA256\n"
    "Signature type: ECDSA\n"
    "Verification error: hostname mismatch\n"
    "Server Temp Key: X25519, 253 bits\n"
)


class FakeClient:
    """Builds command templates that run the fake TLS client."""

    gnutls = GNUTLS_HANDSHAKE
    openssl = OPENSSL_HANDSHAKE
    openssl_ticket = OPENSSL_TICKET
    openssl_brief = {"stderr": OPENSSL_BRIEF}
    openssl_self_signed = {"stderr": OPENSSL_BRIEF_SELF_SIGNED}
    openssl_wrong_host = {"stderr": OPENSSL_BRIEF_WRONG_HOST}

    def __init__(self, root: Path):
        self.root = root
        self.script = root / "fake_tls_client.py"
        self.script.write_text(_FAKE_CLIENT)
        self._count = 0

    def template(self, **scenario) -> str:
        self._count += 1
        path = self.root / f"scenario-{self._count}.json"
        path.write_text(json.dumps(scenario))
        return " ".join([
            shlex.quote(sys.executable),
            shlex.quote(str(self.script)),
            shlex.quote(str(path)),
            "%h",
            "%p",
        ])

    def settings(self, *templates: str, **overrides) -> TransportSettings:
        values = {"programs": list(templates), "poll_interval": 0.05, "handshake_timeout": 5.0}
        values.update(overrides)
        return TransportSettings(**values)


@pytest.fixture
def fake_client(tmp_path: Path) -> FakeClient:
    """A fake external TLS client rooted in a temp directory."""
    root = tmp_path / "fake-client"
    root.mkdir()
    return FakeClient(root)


@pytest.fixture
def make_tar():
    """Factory for package tars with a single top-level <name>-<version>/ directory."""
    return _make_tar


def _make_tar(name: str, version: str, files: dict[str, str] | None = None) -> bytes:
    """Build a package tar with a single top-level <name>-<version>/ directory."""
    files = files or {f"{name}.py": f"# {name} {version}\n"}
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for filename, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"{name}-{version}/{filename}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def make_index():
    """Factory for index payloads mapping package name → version."""
    return _make_index


def _make_index(**packages: str) -> bytes:
    """Build an index payload mapping package name → version."""
    return json.dumps({
        "packages": {name: {"version": version} for name, version in packages.items()}
    }).encode("utf-8")


@pytest.fixture
def make_elpa_index():
    """Factory for ELPA ``archive-contents`` payloads mapping name → version."""
    return _make_elpa_index


def _make_elpa_index(**packages: str) -> bytes:
    """Build an archive-contents form; every package is a tar with no requirements."""
    entries = [
        f' ({name} . [({version.replace(".", " ")}) nil "{name} package" tar nil])'
        for name, version in packages.items()
    ]
    return ("(1\n" + "\n".join(entries) + ")\n").encode("utf-8")
