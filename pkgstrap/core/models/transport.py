"""
Transport models — trust policy, session states, negotiator settings.

States:
    INIT → CONNECTING → AWAIT_HANDSHAKE → LOCATE_DATA_BOUNDARY
         → VERIFY_TRUST → VERIFY_HOST → READY
    any state → FAILED
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class TrustPolicy(StrEnum):
    """What to do when the peer certificate is untrusted or mismatched."""

    NEVER = "never"     # fail the session
    ASK = "ask"         # ask the confirm callback; no callback declines
    ALWAYS = "always"   # accept unconditionally


class SessionState(StrEnum):
    """Negotiation session states."""

    INIT = "init"
    CONNECTING = "connecting"
    AWAIT_HANDSHAKE = "await_handshake"
    LOCATE_DATA_BOUNDARY = "locate_data_boundary"
    VERIFY_TRUST = "verify_trust"
    VERIFY_HOST = "verify_host"
    READY = "ready"
    FAILED = "failed"


class FailureReason(StrEnum):
    """Why a negotiation ended in FAILED."""

    SPAWN = "spawn"
    HANDSHAKE = "handshake"
    UNTRUSTED = "untrusted"
    HOST_MISMATCH = "host_mismatch"


class TransportSettings(BaseModel):
    """Tunables for the external-client transport.

    Empty ``programs`` means the built-in candidate list is used.
    """

    programs: list[str] = Field(default_factory=list)
    trust_files: list[str] = Field(default_factory=list)
    trust_policy: TrustPolicy = TrustPolicy.NEVER
    poll_interval: float = 1.0          # seconds per select() wait
    handshake_timeout: float = 30.0     # overall bound per candidate
    read_timeout: float = 60.0          # bound for reading a response to EOF

    @field_validator("poll_interval", "handshake_timeout", "read_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value
