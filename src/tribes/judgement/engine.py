"""Event judge — moderation verdicts for arbitrary events.

For each candidate event the judge looks for event stamps issued by
members of the Tribe and keeps only the most senior ones:

- A member's own content may only be overridden by members strictly
  shallower than its author (max level = author level - 1).
- Content from non-members may be judged by any member.
- Stamps from non-members are ignored.
- Among eligible stamps the shallowest level wins outright.
- At equal level a curate stamp clears any bans and bans can no longer
  displace it.

Events without a winning stamp fall back to the author's membership:
curate, ban, or neutral for unknown authors. The leader's own content
is never looked up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from tribes.errors import ResolutionInvariantError
from tribes.hierarchy.dedup import canonical_stamps
from tribes.models.event import Event, EventKind
from tribes.models.stamp import Disposition, Stamp, parse_stamps
from tribes.network.gateway import EventNetworkGateway, Filter
from tribes.persistence.membership_store import MembershipStore
from tribes.policy.resolver import MAX_LEVEL

logger = logging.getLogger(__name__)

SOURCE_PUBKEY = "pubkey"
SOURCE_EVENT = "event"


@dataclass(frozen=True)
class Judgement:
    """Verdict on one event.

    source is "event" when a stamp decided it (evidence holds the stamp
    event) and "pubkey" when the author's membership did.
    """
    verdict: Disposition
    source: str
    evidence: Optional[Event] = None


@dataclass
class _Contest:
    """Running fold of eligible stamps on one event."""
    max_level: int
    winners: list[Stamp]

    def offer(self, stamp: Stamp, level: int) -> None:
        if level > self.max_level:
            return
        if level < self.max_level:
            self.max_level = level
            self.winners = []

        if stamp.disposition is Disposition.CURATE:
            if self.winners and self.winners[0].disposition is Disposition.BAN:
                self.winners = []
            self.winners.append(stamp)
        elif stamp.disposition is Disposition.BAN:
            if not any(w.disposition is Disposition.CURATE for w in self.winners):
                self.winners.append(stamp)
        else:
            raise ResolutionInvariantError(
                f"Stamp {stamp.id} with disposition {stamp.disposition.value} "
                f"reached judgement"
            )


class EventJudge:
    """Judges batches of events against the resolved hierarchy.

    Usage:
        judge = EventJudge(network, store, relays, leader, context)
        judgements = await judge.judge(events)
        judgements[event.id].verdict
    """

    def __init__(
        self,
        network: EventNetworkGateway,
        store: MembershipStore,
        relays: list[str],
        leader: str,
        context: str,
    ) -> None:
        self._network = network
        self._store = store
        self._relays = list(relays)
        self._leader = leader
        self._context = context

    def max_level_for(self, event: Event) -> int:
        """Deepest stamper level allowed to override this event's author."""
        author = self._store.get(event.pubkey)
        if author is None:
            return MAX_LEVEL
        return author.level - 1

    def membership(self, pubkey: str) -> Disposition:
        record = self._store.get(pubkey)
        return record.type if record is not None else Disposition.NEUTRAL

    async def fetch_stamps(self, event_ids: list[str]) -> list[Stamp]:
        if not event_ids:
            return []
        events = await self._network.query(
            self._relays,
            Filter(
                kinds=(EventKind.EVENT_STAMP.value,),
                tags=(("c", (self._context,)), ("e", tuple(event_ids))),
            ),
        )
        stamps = [s for s in parse_stamps(events) if s.context == self._context]
        return canonical_stamps(stamps)

    async def judge(self, events: Iterable[Event]) -> dict[str, Judgement]:
        """Return one Judgement per event id."""
        candidates = list(events)
        contests = {
            e.id: _Contest(max_level=self.max_level_for(e), winners=[])
            for e in candidates
        }
        ids = [e.id for e in candidates if e.pubkey != self._leader]

        stamps = await self.fetch_stamps(ids)
        logger.debug("Judging %d events with %d stamps", len(candidates), len(stamps))
        for stamp in stamps:
            stamper = self._store.get(stamp.author)
            if stamper is None:
                continue  # Not a member
            contest = contests.get(stamp.target)
            if contest is None:
                continue  # Not one of the candidates
            contest.offer(stamp, stamper.level)

        result: dict[str, Judgement] = {}
        for e in candidates:
            winners = contests[e.id].winners
            if winners:
                best = winners[0]
                result[e.id] = Judgement(best.disposition, SOURCE_EVENT, best.event)
            else:
                result[e.id] = Judgement(self.membership(e.pubkey), SOURCE_PUBKEY)
        return result
