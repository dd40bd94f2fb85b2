"""
Handshake use case — run one TLS negotiation and report how far it got.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pkgstrap.adapters.transport.negotiator import ConfirmFn, NegotiationOutcome, TransportNegotiator
from pkgstrap.core.config.loader import load_config
from pkgstrap.core.errors import ConfigError
from pkgstrap.core.models.transport import TrustPolicy


@dataclass
class HandshakeResult:
    host: str
    port: int
    outcome: NegotiationOutcome | None = None
    data_bytes: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not None and self.outcome.ok

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"host": self.host, "port": self.port, "ok": self.ok}
        if self.error:
            result["error"] = self.error
        if self.outcome:
            result["negotiation"] = self.outcome.to_dict()
            result["data_bytes"] = self.data_bytes
        return result


def run_handshake(
    host: str,
    port: int = 443,
    *,
    config_path: Path | None = None,
    trust: str | None = None,
    confirm: ConfirmFn | None = None,
) -> HandshakeResult:
    """Negotiate a channel to ``host:port`` and close it straight away."""
    result = HandshakeResult(host=host, port=port)

    try:
        settings = load_config(config_path).tls
        if trust:
            settings = settings.model_copy(update={"trust_policy": TrustPolicy(trust)})
    except ConfigError as e:
        result.error = str(e)
        return result

    sink = bytearray()
    negotiator = TransportNegotiator(settings, confirm=confirm)
    result.outcome = negotiator.negotiate(f"handshake-{host}", sink, host, port)
    if result.outcome.channel is not None:
        with result.outcome.channel:
            result.data_bytes = len(sink)
    else:
        result.error = result.outcome.error
    return result
