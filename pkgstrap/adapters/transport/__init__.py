"""External-client TLS transport."""

from pkgstrap.adapters.transport.negotiator import (
    NegotiationOutcome,
    NegotiationSession,
    TransportChannel,
    TransportNegotiator,
)

__all__ = [
    "NegotiationOutcome",
    "NegotiationSession",
    "TransportChannel",
    "TransportNegotiator",
]
