"""Hierarchy resolver — breadth-first trust propagation from the leader.

Resolution walks the stamp graph one level at a time:

    level 0: the leader (synthetic root record)
    level n: targets stamped by the curated members of level n-1

Rules enforced at every level:
- Shallower levels have absolute precedence. Once a participant is
  decided (curated or banned) no deeper stamp touches its record.
- Within a level, the first surviving stamp on a target decides it.
- Curated targets become the next level's stampers.
- Banned targets are recorded but never delegate.
- The walk stops when a level yields no stamps, no curated members,
  or the depth cap is reached. The cap bounds cyclic and adversarial
  stamp chains.

The store is cleared and rebuilt on every run. Nothing is patched
incrementally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tribes.errors import ResolutionInvariantError
from tribes.hierarchy.dedup import canonical_stamps
from tribes.models.event import EventKind
from tribes.models.membership import MembershipRecord
from tribes.models.stamp import Disposition, Stamp, parse_stamps
from tribes.network.gateway import EventNetworkGateway, Filter
from tribes.persistence.membership_store import MembershipStore
from tribes.policy.resolver import MAX_LEVEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelState:
    """Immutable snapshot handed from one level to the next."""
    level: int
    stampers: frozenset[str]
    decided: frozenset[str]


@dataclass(frozen=True)
class LevelOutcome:
    """Decisions made at one level."""
    level: int
    records: tuple[MembershipRecord, ...]
    curated: frozenset[str]
    banned: frozenset[str]

    def next_state(self, previous: LevelState) -> LevelState:
        return LevelState(
            level=self.level + 1,
            stampers=self.curated,
            decided=previous.decided | self.curated | self.banned,
        )


@dataclass(frozen=True)
class ResolutionReport:
    """Summary of one resolution pass."""
    levels: tuple[LevelOutcome, ...] = ()
    depth_capped: bool = False

    @property
    def depth(self) -> int:
        """Deepest level that produced at least one record."""
        return max((o.level for o in self.levels if o.records), default=0)

    @property
    def member_count(self) -> int:
        return sum(len(o.curated) for o in self.levels)

    @property
    def banned_count(self) -> int:
        return sum(len(o.banned) for o in self.levels)


def decide_level(state: LevelState, stamps: list[Stamp]) -> LevelOutcome:
    """Apply one level's canonical stamps to the snapshot.

    Pure computation: the caller persists the returned records.
    Stamps must already be sorted and deduplicated.
    """
    records: list[MembershipRecord] = []
    curated: set[str] = set()
    banned: set[str] = set()

    for stamp in stamps:
        target = stamp.target
        if target in state.decided:
            continue  # Decided on a shallower level
        if target in curated or target in banned:
            continue  # Decided earlier on this level

        if stamp.disposition is Disposition.BAN:
            banned.add(target)
        elif stamp.disposition is Disposition.CURATE:
            curated.add(target)
        else:
            raise ResolutionInvariantError(
                f"Stamp {stamp.id} with disposition {stamp.disposition.value} "
                f"reached level {state.level} decisions"
            )
        logger.debug(
            "Level %d: %s %s (by %s)",
            state.level, stamp.disposition.value, target, stamp.author,
        )
        records.append(MembershipRecord(
            pubkey=target,
            parent=stamp.author,
            level=state.level,
            type=stamp.disposition,
        ))

    return LevelOutcome(
        level=state.level,
        records=tuple(records),
        curated=frozenset(curated),
        banned=frozenset(banned),
    )


class HierarchyResolver:
    """Rebuilds the membership store from participant stamps.

    Usage:
        resolver = HierarchyResolver(network, store, relays, leader, context)
        report = await resolver.resolve()
    """

    def __init__(
        self,
        network: EventNetworkGateway,
        store: MembershipStore,
        relays: list[str],
        leader: str,
        context: str,
        max_level: int = MAX_LEVEL,
    ) -> None:
        self._network = network
        self._store = store
        self._relays = list(relays)
        self._leader = leader
        self._context = context
        self._max_level = max_level

    def initial_state(self) -> LevelState:
        return LevelState(
            level=1,
            stampers=frozenset([self._leader]),
            decided=frozenset([self._leader]),
        )

    async def fetch_level(self, state: LevelState) -> list[Stamp]:
        """Fetch and canonicalise the stamps issued by a level's stampers."""
        events = await self._network.query(
            self._relays,
            Filter(
                kinds=(EventKind.PUBKEY_STAMP.value,),
                authors=tuple(sorted(state.stampers)),
                tags=(("c", (self._context,)),),
            ),
        )
        stamps = [
            s for s in parse_stamps(events)
            if s.context == self._context and s.author in state.stampers
        ]
        return canonical_stamps(stamps)

    async def step(self, state: LevelState) -> LevelOutcome:
        """Resolve a single level and persist its records."""
        stamps = await self.fetch_level(state)
        outcome = decide_level(state, stamps)
        for record in outcome.records:
            self._store.set(record)
        logger.info(
            "Level %d: %d stamps, %d curated, %d banned",
            state.level, len(stamps), len(outcome.curated), len(outcome.banned),
        )
        return outcome

    async def resolve(self) -> ResolutionReport:
        """Clear the store and walk the hierarchy down to the depth cap.

        All writes of the pass are grouped in one store batch.
        """
        outcomes: list[LevelOutcome] = []
        state = self.initial_state()
        with self._store.batch():
            self._store.clear()
            self._store.set(MembershipRecord.root(self._leader))

            while state.level < self._max_level:
                if not state.stampers:
                    break
                outcome = await self.step(state)
                if not outcome.records:
                    break
                outcomes.append(outcome)
                state = outcome.next_state(state)

        depth_capped = state.level >= self._max_level and bool(state.stampers)
        if depth_capped:
            logger.warning(
                "Hierarchy resolution stopped at depth cap %d", self._max_level,
            )
        report = ResolutionReport(levels=tuple(outcomes), depth_capped=depth_capped)
        logger.info(
            "Resolved hierarchy: %d members, %d banned, depth %d",
            report.member_count, report.banned_count, report.depth,
        )
        return report
