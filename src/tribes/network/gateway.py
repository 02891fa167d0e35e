"""Event network and signer interfaces.

The Tribe core never speaks a relay protocol itself. It consumes two
collaborators:
- EventNetworkGateway: query and publish signed events on relays.
- SignerGateway: turn an unsigned template into a signed event.

InMemoryRelayNetwork is a complete in-process gateway. It backs the
test-suite and lets the core run embedded without a live relay pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Sequence, runtime_checkable

from tribes.errors import NetworkError
from tribes.models.event import Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Filter:
    """Query filter. Empty constraints match everything.

    `tags` pairs a single-letter tag name with its accepted values, e.g.
    (("c", ("my-tribe",)), ("e", (event_id, ...))).
    """
    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    tags: tuple[tuple[str, tuple[str, ...]], ...] = ()

    def tag(self, name: str) -> tuple[str, ...]:
        """Accepted values for a tag name, empty when unconstrained."""
        for tag_name, values in self.tags:
            if tag_name == name:
                return values
        return ()

    def matches(self, event: Event) -> bool:
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.authors and event.pubkey not in self.authors:
            return False
        for name, values in self.tags:
            wanted = set(values)
            if not any(v in wanted for v in event.tag_values(name)):
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (`#c`, `#e` style tag keys)."""
        data: dict[str, Any] = {}
        if self.kinds:
            data["kinds"] = list(self.kinds)
        if self.authors:
            data["authors"] = list(self.authors)
        for name, values in self.tags:
            data[f"#{name}"] = list(values)
        return data


@runtime_checkable
class EventNetworkGateway(Protocol):
    """Relay pool used by the core.

    query() returns a finite batch, deduplicated by event id.
    publish() is best-effort; the core does not retry it.
    Both raise NetworkError on failure.
    """

    async def query(self, relays: Sequence[str], flt: Filter) -> list[Event]:
        ...

    async def publish(self, relays: Sequence[str], event: Event) -> None:
        ...


@runtime_checkable
class SignerGateway(Protocol):
    """Signs stamp templates.

    The template carries `kind`, `content`, `tags` and `created_at`.
    Raises SigningError when no key is available or signing is refused.
    """

    async def sign(self, template: dict[str, Any]) -> Event:
        ...


class InMemoryRelayNetwork:
    """In-process relay pool.

    Each relay URL holds its own set of events. Queries union the
    requested relays and deduplicate by id. Relays listed in `offline`
    raise NetworkError on query and publish.

    Usage:
        network = InMemoryRelayNetwork()
        network.add(["wss://tribe.example"], stamp_event)
        events = await network.query(["wss://tribe.example"], Filter(kinds=(77,)))
    """

    def __init__(self, offline: Optional[Iterable[str]] = None) -> None:
        self._relays: dict[str, dict[str, Event]] = {}
        self.offline: set[str] = set(offline or ())
        self.queries: list[tuple[tuple[str, ...], Filter]] = []
        self.published: list[tuple[tuple[str, ...], Event]] = []

    def add(self, relays: Iterable[str], *events: Event) -> None:
        """Seed relays with events without recording a publish."""
        for relay in relays:
            store = self._relays.setdefault(relay, {})
            for event in events:
                store[event.id] = event

    def events_on(self, relay: str) -> list[Event]:
        return list(self._relays.get(relay, {}).values())

    def _check_online(self, relays: Sequence[str]) -> None:
        down = [r for r in relays if r in self.offline]
        if down:
            raise NetworkError(f"Relays unreachable: {', '.join(down)}")

    async def query(self, relays: Sequence[str], flt: Filter) -> list[Event]:
        self.queries.append((tuple(relays), flt))
        self._check_online(relays)
        found: dict[str, Event] = {}
        for relay in relays:
            for event in self._relays.get(relay, {}).values():
                if event.id not in found and flt.matches(event):
                    found[event.id] = event
        logger.debug("Query %s on %d relays: %d events", flt.to_dict(), len(relays), len(found))
        return list(found.values())

    async def publish(self, relays: Sequence[str], event: Event) -> None:
        self._check_online(relays)
        self.published.append((tuple(relays), event))
        self.add(relays, event)
