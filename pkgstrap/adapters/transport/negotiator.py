"""
Transport negotiator — secure channels through an external TLS client.

No TLS runs in-process. A command-line client (gnutls-cli, openssl
s_client) does the cryptography; this module drives it as a subprocess,
scans its stdout and stderr for handshake markers, and hands the caller
a channel whose sink holds only application data. stderr is read on its
own pipe and never reaches the sink.

Per-session state machine:

    INIT                  pick the next candidate command that spawns
    CONNECTING            subprocess started, stdout and stderr non-blocking
    AWAIT_HANDSHAKE       poll until the success marker shows up
    LOCATE_DATA_BOUNDARY  poll until the end-of-info marker shows up
    VERIFY_TRUST          untrusted-certificate marker vs. trust policy
    VERIFY_HOST           hostname-mismatch marker vs. trust policy
    READY                 informational text stripped, channel returned
    FAILED                subprocess terminated, sink cleared

The negotiator never raises for transport problems; it returns a
NegotiationOutcome. A candidate that spawns but never completes the
handshake is torn down and the next candidate is tried. Trust and host
failures end the negotiation.
"""

from __future__ import annotations

import logging
import os
import re
import select
import subprocess
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from pkgstrap.adapters.transport.programs import (
    DEFAULT_PROGRAMS,
    Markers,
    build_command,
    find_trust_file,
)
from pkgstrap.core.errors import TransportError
from pkgstrap.core.models.transport import (
    FailureReason,
    SessionState,
    TransportSettings,
    TrustPolicy,
)

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]

_READ_CHUNK = 65536
_TERMINATE_GRACE = 2.0


@dataclass
class NegotiationSession:
    """One subprocess, its two output buffers, and its state tag.

    stdout feeds ``sink``. stderr feeds ``diag``, which is only scanned
    for markers and never becomes application data.
    """

    name: str
    command: list[str]
    sink: bytearray
    diag: bytearray = field(default_factory=bytearray)
    process: subprocess.Popen | None = None
    state: SessionState = SessionState.INIT
    eof: bool = False
    diag_eof: bool = False
    keep_diag: bool = True

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    @property
    def exhausted(self) -> bool:
        """Both output streams are closed; no more text can arrive."""
        return self.eof and self.diag_eof

    def spawn(self) -> None:
        """Start the client. Raises OSError if the executable cannot run."""
        self.process = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
        )
        assert self.process.stdout is not None and self.process.stderr is not None
        os.set_blocking(self.process.stdout.fileno(), False)
        os.set_blocking(self.process.stderr.fileno(), False)
        self.state = SessionState.CONNECTING
        logger.debug("[%s] spawned pid=%d: %s", self.name, self.process.pid, self.command)

    def pump(self, timeout: float) -> int:
        """Wait up to ``timeout`` seconds for output on either stream.

        stdout is appended to the sink, stderr to ``diag`` (or dropped
        once ``keep_diag`` is off). Returns the number of bytes added to
        the sink. Sets ``eof`` / ``diag_eof`` as the streams close.
        """
        proc = self.process
        if proc is None:
            return 0
        streams: dict[int, str] = {}
        if not self.eof and proc.stdout is not None:
            streams[proc.stdout.fileno()] = "out"
        if not self.diag_eof and proc.stderr is not None:
            streams[proc.stderr.fileno()] = "err"
        if not streams:
            return 0

        ready, _, _ = select.select(list(streams), [], [], max(timeout, 0.0))
        added = 0
        for fd in ready:
            try:
                chunk = os.read(fd, _READ_CHUNK)
            except BlockingIOError:
                continue
            if streams[fd] == "out":
                if not chunk:
                    self.eof = True
                else:
                    self.sink.extend(chunk)
                    added += len(chunk)
            elif not chunk:
                self.diag_eof = True
            elif self.keep_diag:
                self.diag.extend(chunk)
        return added

    def terminate(self) -> None:
        """Stop the subprocess and release its pipes."""
        proc = self.process
        if proc is None:
            return
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=_TERMINATE_GRACE)
            except subprocess.TimeoutExpired:
                logger.debug("[%s] pid=%d ignored SIGTERM, killing", self.name, proc.pid)
                proc.kill()
                proc.wait()
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError as e:
                logger.debug("[%s] closing pipe: %s", self.name, e)


class TransportChannel:
    """A negotiated byte stream. The sink only ever holds application data."""

    def __init__(
        self,
        session: NegotiationSession,
        host: str,
        port: int,
        poll_interval: float = 1.0,
    ):
        self._session = session
        self.host = host
        self.port = port
        self._poll_interval = poll_interval

    @property
    def name(self) -> str:
        return self._session.name

    @property
    def process(self) -> subprocess.Popen | None:
        return self._session.process

    @property
    def sink(self) -> bytearray:
        return self._session.sink

    @property
    def command(self) -> list[str]:
        return self._session.command

    @property
    def alive(self) -> bool:
        return self._session.alive

    @property
    def eof(self) -> bool:
        return self._session.eof

    def send(self, data: bytes) -> None:
        """Write application data to the remote side."""
        proc = self._session.process
        if proc is None or proc.stdin is None or proc.stdin.closed:
            raise TransportError(f"Channel '{self.name}' is closed", reason="closed")
        try:
            proc.stdin.write(data)
            proc.stdin.flush()
        except (BrokenPipeError, ValueError) as e:
            raise TransportError(f"Channel '{self.name}' write failed: {e}", reason="closed") from e

    def read_available(self, timeout: float = 0.0) -> int:
        """Read whatever arrives within ``timeout`` seconds into the sink."""
        return self._session.pump(timeout)

    def read_to_eof(self, max_wait: float) -> bytes:
        """Read until the remote side closes, bounded by ``max_wait`` seconds.

        Raises:
            TransportError: If EOF is not reached in time.
        """
        deadline = time.monotonic() + max_wait
        while not self._session.eof:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransportError(
                    f"Channel '{self.name}' timed out after {max_wait}s",
                    reason="timeout",
                )
            self._session.pump(min(self._poll_interval, remaining))
        return bytes(self._session.sink)

    def close(self) -> None:
        self._session.terminate()

    def __enter__(self) -> TransportChannel:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<TransportChannel name={self.name!r} host={self.host}:{self.port}>"


@dataclass
class NegotiationOutcome:
    """Result of one negotiation. ``channel`` is set only when ok."""

    ok: bool
    state: SessionState
    reason: FailureReason | None = None
    error: str = ""
    command: list[str] = field(default_factory=list)
    channel: TransportChannel | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "state": self.state.value,
            "reason": self.reason.value if self.reason else None,
            "error": self.error,
            "command": self.command,
        }


class TransportNegotiator:
    """Opens secure channels by driving external TLS clients.

    Args:
        settings: Programs, trust files, policy and timing.
        markers: Output patterns to scan for.
        confirm: Called with a question when the trust policy is ASK.
            Returning False, or no callback at all, declines.
    """

    def __init__(
        self,
        settings: TransportSettings | None = None,
        *,
        markers: Markers | None = None,
        confirm: ConfirmFn | None = None,
    ):
        self.settings = settings or TransportSettings()
        self.markers = markers or Markers()
        self._confirm = confirm

    @property
    def programs(self) -> Sequence[str]:
        return self.settings.programs or DEFAULT_PROGRAMS

    def open_stream(
        self,
        name: str,
        sink: bytearray,
        host: str,
        port: int,
    ) -> TransportChannel | None:
        """Negotiate and return the channel, or None on failure."""
        return self.negotiate(name, sink, host, port).channel

    def negotiate(
        self,
        name: str,
        sink: bytearray,
        host: str,
        port: int,
    ) -> NegotiationOutcome:
        """Run the session state machine against each candidate in turn.

        The sink is emptied first; on success it holds only the bytes
        that followed the end-of-info marker.
        """
        trust_file = find_trust_file(self.settings.trust_files)
        spawned_any = False
        last: NegotiationOutcome | None = None

        for template in self.programs:
            sink.clear()
            try:
                command = build_command(template, host, port, trust_file)
            except ValueError as e:
                logger.debug("[%s] skipping candidate: %s", name, e)
                continue

            session = NegotiationSession(name=name, command=command, sink=sink)
            try:
                session.spawn()
            except OSError as e:
                logger.debug("[%s] cannot spawn %s: %s", name, command[0], e)
                continue

            spawned_any = True
            logger.info("Opening TLS connection to %s:%d with %s...", host, port, command[0])
            outcome = self._drive(session, host, port)
            if outcome.ok:
                logger.info("Opening TLS connection to %s:%d...done", host, port)
                return outcome
            last = outcome
            if outcome.reason != FailureReason.HANDSHAKE:
                break

        if not spawned_any:
            logger.warning("[%s] no TLS client could be started (tried %d)", name, len(self.programs))
            return NegotiationOutcome(
                ok=False,
                state=SessionState.FAILED,
                reason=FailureReason.SPAWN,
                error="No TLS client program could be started",
            )

        assert last is not None
        logger.warning("Opening TLS connection to %s:%d...failed: %s", host, port, last.error)
        return last

    # ── Session driver ───────────────────────────────────────────

    def _drive(self, session: NegotiationSession, host: str, port: int) -> NegotiationOutcome:
        try:
            return self._run_states(session, host, port)
        except BaseException:
            self._teardown(session)
            raise

    def _run_states(self, session: NegotiationSession, host: str, port: int) -> NegotiationOutcome:
        sink = session.sink
        deadline = time.monotonic() + self.settings.handshake_timeout

        session.state = SessionState.AWAIT_HANDSHAKE
        found = self._wait_for(session, self.markers.success, {"diag": 0, "sink": 0}, deadline)
        if found is None:
            return self._fail(
                session, FailureReason.HANDSHAKE,
                f"handshake with {host}:{port} did not complete",
            )

        session.state = SessionState.LOCATE_DATA_BOUNDARY
        stream, success = found
        start = {"diag": 0, "sink": 0}
        start[stream] = success.end()
        found = self._wait_for(session, self.markers.end_of_info, start, deadline)
        if found is None:
            return self._fail(
                session, FailureReason.HANDSHAKE,
                f"no end of informational output from {host}:{port}",
            )
        stream, end_of_info = found
        if stream == "sink":
            boundary = end_of_info.end()
            info = bytes(session.diag) + bytes(sink[:boundary])
        else:
            boundary = 0
            info = bytes(session.diag[:end_of_info.end()])

        session.state = SessionState.VERIFY_TRUST
        if self.markers.untrusted.search(info) and not self._accept(
            f"The certificate presented by {host} is NOT trusted. Accept anyway?"
        ):
            return self._fail(
                session, FailureReason.UNTRUSTED,
                f"certificate presented by {host} is not trusted",
            )

        session.state = SessionState.VERIFY_HOST
        if self.markers.host_mismatch.search(info) and not self._accept(
            f"Host name in certificate doesn't match {host}. Accept anyway?"
        ):
            return self._fail(
                session, FailureReason.HOST_MISMATCH,
                f"certificate host name does not match {host}",
            )

        del sink[:boundary]
        session.keep_diag = False
        session.diag.clear()
        session.state = SessionState.READY
        return NegotiationOutcome(
            ok=True,
            state=SessionState.READY,
            command=session.command,
            channel=TransportChannel(session, host, port, self.settings.poll_interval),
        )

    def _wait_for(
        self,
        session: NegotiationSession,
        pattern: re.Pattern[bytes],
        start: dict[str, int],
        deadline: float,
    ) -> tuple[str, re.Match[bytes]] | None:
        """Poll until ``pattern`` matches in stderr or stdout.

        ``start`` holds the offset to search from in each buffer. Returns
        the buffer name ("diag" or "sink") and the match; None once both
        streams close or the deadline passes.
        """
        while True:
            for stream, buf in (("diag", session.diag), ("sink", session.sink)):
                match = pattern.search(buf, start[stream])
                if match is not None:
                    return stream, match
            if session.exhausted:
                return None
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            session.pump(min(self.settings.poll_interval, remaining))

    def _accept(self, question: str) -> bool:
        policy = self.settings.trust_policy
        if policy == TrustPolicy.ALWAYS:
            return True
        if policy == TrustPolicy.NEVER:
            return False
        if self._confirm is None:
            logger.info("No confirmation available, declining: %s", question)
            return False
        return bool(self._confirm(question))

    def _fail(
        self,
        session: NegotiationSession,
        reason: FailureReason,
        error: str,
    ) -> NegotiationOutcome:
        reached = session.state
        self._teardown(session)
        logger.debug("[%s] %s failed at %s: %s", session.name, reason.value, reached.value, error)
        return NegotiationOutcome(
            ok=False,
            state=SessionState.FAILED,
            reason=reason,
            error=error,
            command=session.command,
        )

    @staticmethod
    def _teardown(session: NegotiationSession) -> None:
        session.terminate()
        session.sink.clear()
        session.diag.clear()
        session.state = SessionState.FAILED
