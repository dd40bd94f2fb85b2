"""
Minimal HTTP/1.0 framing for negotiated channels.

Requests are sent with ``Connection: close`` so the server ends the
response by closing the stream. Content-Length, when present, lets the
reader stop early. A response that has neither Content-Length nor chunked
encoding is "unframed": its body is whatever arrived before EOF.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pkgstrap import __version__

USER_AGENT = f"pkgstrap/{__version__}"

_HEADER_END = b"\r\n\r\n"


@dataclass
class HttpResponse:
    status: int
    reason: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    framed: bool = False    # body length known from the headers


class HttpFormatError(ValueError):
    """Raised when a response cannot be parsed."""


def build_request(host: str, path: str) -> bytes:
    """Encode a GET request for ``path`` on ``host``."""
    lines = [
        f"GET {path} HTTP/1.0",
        f"Host: {host}",
        f"User-Agent: {USER_AGENT}",
        "Accept: */*",
        "Connection: close",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("ascii")


def is_complete(raw: bytes | bytearray) -> bool:
    """Whether ``raw`` already holds a full response with a known length."""
    end = raw.find(_HEADER_END)
    if end < 0:
        return False
    try:
        _, _, headers = _parse_head(bytes(raw[:end]))
    except HttpFormatError:
        return False
    length = headers.get("content-length")
    if length is None or not length.isdigit():
        return False
    return len(raw) - (end + len(_HEADER_END)) >= int(length)


def parse_response(raw: bytes | bytearray) -> HttpResponse:
    """Split a raw response into status, headers and body."""
    end = raw.find(_HEADER_END)
    if end < 0:
        raise HttpFormatError("Response has no header terminator")

    status, reason, headers = _parse_head(bytes(raw[:end]))
    body = bytes(raw[end + len(_HEADER_END):])
    framed = False

    if headers.get("transfer-encoding", "").lower() == "chunked":
        body = _dechunk(body)
        framed = True
    length = headers.get("content-length")
    if not framed and length is not None and length.isdigit():
        framed = True
        expected = int(length)
        if len(body) < expected:
            raise HttpFormatError(f"Truncated body: {len(body)} of {expected} bytes")
        body = body[:expected]

    return HttpResponse(status=status, reason=reason, headers=headers, body=body, framed=framed)


def _parse_head(head: bytes) -> tuple[int, str, dict[str, str]]:
    lines = head.decode("iso-8859-1").split("\r\n")
    parts = lines[0].split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/") or not parts[1].isdigit():
        raise HttpFormatError(f"Bad status line: {lines[0]!r}")
    headers: dict[str, str] = {}
    for line in lines[1:]:
        key, sep, value = line.partition(":")
        if sep:
            headers[key.strip().lower()] = value.strip()
    return int(parts[1]), parts[2] if len(parts) > 2 else "", headers


def _dechunk(body: bytes) -> bytes:
    out = bytearray()
    pos = 0
    while True:
        line_end = body.find(b"\r\n", pos)
        if line_end < 0:
            raise HttpFormatError("Truncated chunk header")
        size_field = body[pos:line_end].split(b";", 1)[0].strip()
        try:
            size = int(size_field, 16)
        except ValueError as e:
            raise HttpFormatError(f"Bad chunk size: {size_field!r}") from e
        if size == 0:
            return bytes(out)
        start = line_end + 2
        if start + size > len(body):
            raise HttpFormatError("Truncated chunk")
        out.extend(body[start:start + size])
        pos = start + size + 2
