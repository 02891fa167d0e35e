"""Stamp models — signed dispositions about participants and events.

A stamp is an ordinary network event of kind 77 (participant stamp,
target in a `p` tag) or kind 78 (event stamp, target in an `e` tag).
Every stamp is scoped to one Tribe by its `c` (context) tag.

Disposition is encoded by tag presence:
- no disposition tag: curate
- a `ban` tag: ban
- a `neutral` tag: neutral (only suppresses the author's earlier stamp)

Well-formedness:
- exactly one `c` tag and exactly one target tag
- the event kind is 77 or 78
Anything else raises MalformedStampError before the stamp can take part
in deduplication, resolution or judgement.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from tribes.errors import MalformedStampError
from tribes.models.event import Event, EventKind

logger = logging.getLogger(__name__)


class Disposition(str, enum.Enum):
    """What a stamp (or a membership) says about its target."""
    CURATE = "curate"
    BAN = "ban"
    NEUTRAL = "neutral"


class StampKind(int, enum.Enum):
    """The two stamp kinds, each with its own target tag."""
    PUBKEY = EventKind.PUBKEY_STAMP.value
    EVENT = EventKind.EVENT_STAMP.value

    @property
    def target_tag(self) -> str:
        return "p" if self is StampKind.PUBKEY else "e"


def tag_value(event: Event, name: str) -> Optional[str]:
    """Return the single value of tag `name`, or None when absent.

    Raises MalformedStampError if the tag occurs more than once.
    """
    values = [t for t in event.tags if t and t[0] == name]
    if len(values) > 1:
        raise MalformedStampError(event.id, f"multiple [{name}] tags")
    if len(values) == 1:
        if len(values[0]) < 2:
            raise MalformedStampError(event.id, f"[{name}] tag has no value")
        return values[0][1]
    return None


def required_tag_value(event: Event, name: str) -> str:
    value = tag_value(event, name)
    if value is None:
        raise MalformedStampError(event.id, f"no [{name}] tag")
    return value


def disposition_of(event: Event) -> Disposition:
    """Return the disposition encoded in a stamp's tags."""
    if event.kind not in (StampKind.PUBKEY.value, StampKind.EVENT.value):
        raise MalformedStampError(event.id, f"kind {event.kind} is not a stamp")
    for t in event.tags:
        if t and t[0] in (Disposition.BAN.value, Disposition.NEUTRAL.value):
            return Disposition(t[0])
    return Disposition.CURATE


@dataclass(frozen=True)
class Stamp:
    """A parsed, well-formed stamp.

    The underlying event is kept so it can be reported as evidence.
    """
    event: Event
    kind: StampKind
    author: str
    target: str
    context: str
    disposition: Disposition
    created_at: int

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def key(self) -> tuple[str, str, str]:
        """Deduplication key: one stamp per author, target and context."""
        return (self.author, self.target, self.context)

    @staticmethod
    def parse(event: Event) -> Stamp:
        """Parse an event into a stamp.

        Raises MalformedStampError for non-stamp kinds, missing tags or
        repeated single-valued tags.
        """
        disposition = disposition_of(event)
        kind = StampKind(event.kind)
        return Stamp(
            event=event,
            kind=kind,
            author=event.pubkey,
            target=required_tag_value(event, kind.target_tag),
            context=required_tag_value(event, "c"),
            disposition=disposition,
            created_at=event.created_at,
        )


def parse_stamps(events: Iterable[Event]) -> list[Stamp]:
    """Parse a batch of events, rejecting malformed ones.

    A malformed stamp is logged and dropped; it never aborts the batch.
    """
    stamps: list[Stamp] = []
    for event in events:
        try:
            stamps.append(Stamp.parse(event))
        except MalformedStampError as exc:
            logger.warning("Rejecting stamp: %s", exc)
    return stamps


def stamp_template(
    kind: StampKind,
    context: str,
    target: str,
    disposition: Disposition,
    created_at: int,
) -> dict:
    """Build the unsigned template for a new stamp."""
    tags = [["c", context], [kind.target_tag, target]]
    if disposition is not Disposition.CURATE:
        tags.append([disposition.value])
    return {
        "kind": kind.value,
        "content": "",
        "tags": tags,
        "created_at": created_at,
    }
