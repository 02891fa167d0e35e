"""Network event model — the signed unit exchanged with relays.

Events reach the core already signed and verified. The core never
inspects `sig`; it only reads ids, authors, kinds, timestamps and tags.

Kinds used by the Tribe:
- PROFILE (0): profile metadata, JSON content with an optional `name`.
- FOLLOW_LIST (3): contact list, republished by the healer.
- PUBKEY_STAMP (77): a stamp on another participant.
- EVENT_STAMP (78): a stamp on a content event.
- RELAY_LIST (10002): a participant's declared relays (`r` tags).
- FILE_SERVER_LIST (10065): file-server list, republished by the healer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class EventKind(int, enum.Enum):
    """Event kinds the Tribe reads or republishes."""
    PROFILE = 0
    FOLLOW_LIST = 3
    PUBKEY_STAMP = 77
    EVENT_STAMP = 78
    RELAY_LIST = 10002
    FILE_SERVER_LIST = 10065


@dataclass(frozen=True)
class Event:
    """A single signed event as returned by the network.

    Tags are kept as lists of strings in wire order; the first element
    of each tag is its name.
    """
    id: str
    pubkey: str
    kind: int
    created_at: int
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    sig: str = ""

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called `name`."""
        return [t[1] for t in self.tags if t and t[0] == name and len(t) > 1]

    def has_tag(self, name: str) -> bool:
        return any(t and t[0] == name for t in self.tags)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Event:
        """Build an event from its wire representation."""
        return Event(
            id=data["id"],
            pubkey=data["pubkey"],
            kind=int(data["kind"]),
            created_at=int(data["created_at"]),
            tags=[list(t) for t in data.get("tags", [])],
            content=data.get("content", ""),
            sig=data.get("sig", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "kind": self.kind,
            "created_at": self.created_at,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig,
        }


def relay_urls(relay_list: Optional[Event]) -> list[str]:
    """Return the relay URLs declared in a relay-list event."""
    if relay_list is None:
        return []
    return relay_list.tag_values("r")
