"""Network module — relay and signer collaborators."""

from tribes.network.gateway import (
    EventNetworkGateway,
    Filter,
    InMemoryRelayNetwork,
    SignerGateway,
)

__all__ = [
    "EventNetworkGateway",
    "Filter",
    "InMemoryRelayNetwork",
    "SignerGateway",
]
