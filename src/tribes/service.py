"""Tribe service — unified facade for one Tribe instance.

This is the primary interface for programmatic access to a Tribe.
It orchestrates all subsystems:
- Hierarchy resolution (full rebuild of the membership store)
- Profile sync (member display names)
- Profile healing (background metadata mirroring)
- Event judgement (moderation verdicts)
- Stamping (sign, publish, re-sync)
- Hierarchy queries (member, level, name, children, bannedby)

One Tribe instance runs at most one sync at a time. A sync within the
cool-down window is skipped unless forced; callers arriving while a
sync is in flight await the same outcome. Healing is launched as a
background task after each sync and its handle is returned to the
caller; healing failures are logged, never raised to sync callers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, Union

from tribes.errors import NetworkError, SigningError, UnknownParticipantError
from tribes.healing.healer import HealingReport, ProfileHealer
from tribes.healing.profiles import ProfileSync
from tribes.hierarchy.resolver import HierarchyResolver, ResolutionReport
from tribes.judgement.engine import EventJudge, Judgement
from tribes.models.event import Event
from tribes.models.membership import MembershipRecord
from tribes.models.stamp import Disposition, StampKind, stamp_template
from tribes.network.gateway import EventNetworkGateway, SignerGateway
from tribes.persistence.membership_store import (
    LAST_SYNC_KEY,
    LEADER_KEY,
    InMemoryMembershipStore,
    MembershipStore,
)
from tribes.policy.resolver import (
    DEFAULT_HEALER_RELAYS,
    DEFAULT_SYNC_TIMEOUT,
    MAX_LEVEL,
    TribePolicy,
)

logger = logging.getLogger(__name__)


def unixtime() -> int:
    return int(datetime.now(timezone.utc).timestamp())


@dataclass(frozen=True)
class SyncResult:
    """Result of a sync call.

    skipped is True when the cool-down suppressed the sync; report and
    healing are then None. healing is the background healing task.
    """
    skipped: bool
    report: Optional[ResolutionReport] = None
    healing: Optional[asyncio.Task] = None


class Tribe:
    """A trust hierarchy rooted at one leader, scoped by one context.

    Usage:
        tribe = Tribe(leader, "my-tribe", ["wss://relay.example"], network,
                      signer=signer)
        result = await tribe.sync()
        if result.healing is not None:
            await result.healing      # optional

        judgements = await tribe.judge_events(events)
        await tribe.stamp_pubkey(pubkey, "ban")

    Persistence (optional):
        tribe = Tribe(..., store=JsonMembershipStore(Path("tribe.json")))
        # Records survive restarts; a leader change resets the store.
    """

    def __init__(
        self,
        leader: str,
        context: str,
        relays: Sequence[str],
        network: EventNetworkGateway,
        store: Optional[MembershipStore] = None,
        signer: Optional[SignerGateway] = None,
        timeout: int = DEFAULT_SYNC_TIMEOUT,
        healer_relays: Sequence[str] = DEFAULT_HEALER_RELAYS,
        max_level: int = MAX_LEVEL,
    ) -> None:
        self.leader = leader
        self.context = context
        self.relays = list(relays)
        self.timeout = timeout
        self._network = network
        self._signer = signer
        self._store = store if store is not None else InMemoryMembershipStore()

        self._resolver = HierarchyResolver(
            network, self._store, self.relays, leader, context, max_level,
        )
        self._judge = EventJudge(network, self._store, self.relays, leader, context)
        self._profiles = ProfileSync(network, self._store, self.relays)
        self._healer = ProfileHealer(network, self._store, self.relays, healer_relays)

        self._in_flight: Optional[asyncio.Future] = None
        self._healing: Optional[asyncio.Task] = None

        stored_leader = self._store.get_meta(LEADER_KEY)
        if stored_leader and stored_leader != leader:
            logger.info("Leader changed from %s to %s, resetting store", stored_leader, leader)
            self._store.reset()
        self._store.set_meta(LEADER_KEY, leader)

    @classmethod
    def from_policy(
        cls,
        policy: TribePolicy,
        network: EventNetworkGateway,
        store: Optional[MembershipStore] = None,
        signer: Optional[SignerGateway] = None,
    ) -> Tribe:
        return cls(
            leader=policy.leader,
            context=policy.context,
            relays=policy.relays,
            network=network,
            store=store,
            signer=signer,
            timeout=policy.timeout,
            healer_relays=policy.healer_relays,
            max_level=policy.max_level,
        )

    @property
    def store(self) -> MembershipStore:
        return self._store

    @property
    def synced(self) -> Optional[asyncio.Future]:
        """Handle of the current or most recent sync."""
        return self._in_flight

    @property
    def healing(self) -> Optional[asyncio.Task]:
        """Handle of the current or most recent healing task."""
        return self._healing

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync(self, force: bool = False) -> SyncResult:
        """Rebuild the hierarchy from the network.

        Skipped when the last sync is younger than `timeout` seconds,
        unless forced. Raises NetworkError if resolution fails; the
        store may then be stale or partially rebuilt and a later sync
        can be retried.
        """
        in_flight = self._in_flight
        if in_flight is not None and not in_flight.done():
            if not force:
                return await asyncio.shield(in_flight)
            # A forced sync must observe everything published so far
            await asyncio.wait([in_flight])
            newer = self._in_flight
            if newer is not None and newer is not in_flight:
                # Another waiter started it after the awaited sync finished
                return await asyncio.shield(newer)

        if not force and self._cooling_down():
            logger.debug("Not syncing, timeout (%d secs) was not reached", self.timeout)
            return SyncResult(skipped=True)

        self._in_flight = asyncio.ensure_future(self._sync())
        return await asyncio.shield(self._in_flight)

    def _cooling_down(self) -> bool:
        last = self._store.get_meta(LAST_SYNC_KEY)
        if not last:
            return False
        return int(last) > unixtime() - self.timeout

    async def _sync(self) -> SyncResult:
        report = await self._resolver.resolve()
        try:
            await self._profiles.sync()
        except NetworkError as exc:
            logger.warning("Profile sync failed: %s", exc)
        self._store.set_meta(LAST_SYNC_KEY, str(unixtime()))
        healing = self.heal_profiles()
        logger.info("Synced")
        return SyncResult(skipped=False, report=report, healing=healing)

    def heal_profiles(self) -> asyncio.Task:
        """Launch a background healing pass and return its task."""
        task = asyncio.ensure_future(self._healer.heal())
        task.add_done_callback(_log_healing_outcome)
        self._healing = task
        return task

    # ------------------------------------------------------------------
    # Judgement
    # ------------------------------------------------------------------

    async def judge_events(self, events: Iterable[Event]) -> dict[str, Judgement]:
        """Return a Judgement per event id."""
        return await self._judge.judge(events)

    # ------------------------------------------------------------------
    # Stamping
    # ------------------------------------------------------------------

    async def stamp_pubkey(
        self,
        pubkey: str,
        mode: Union[Disposition, str] = Disposition.CURATE,
    ) -> Event:
        """Stamp a participant, publish the stamp and force a re-sync."""
        return await self._stamp(StampKind.PUBKEY, pubkey, Disposition(mode))

    async def stamp_event(
        self,
        event: Event,
        mode: Union[Disposition, str] = Disposition.CURATE,
    ) -> Event:
        """Stamp a content event, publish the stamp and force a re-sync."""
        return await self._stamp(StampKind.EVENT, event.id, Disposition(mode))

    async def _stamp(self, kind: StampKind, target: str, mode: Disposition) -> Event:
        if self._signer is None:
            raise SigningError("No signer available")
        template = stamp_template(kind, self.context, target, mode, unixtime())
        signed = await self._signer.sign(template)
        await self._network.publish(self.relays, signed)
        logger.info("Published %s stamp on %s", mode.value, target)
        await self.sync(force=True)
        return signed

    # ------------------------------------------------------------------
    # Hierarchy queries
    # ------------------------------------------------------------------

    def lookup(self, pubkey: str) -> Optional[MembershipRecord]:
        return self._store.get(pubkey)

    def member(self, pubkey: str) -> bool:
        return self._store.get(pubkey) is not None

    def level(self, pubkey: str) -> int:
        """Return the member's level. Raises UnknownParticipantError."""
        record = self._store.get(pubkey)
        if record is None:
            raise UnknownParticipantError(pubkey)
        return record.level

    def name(self, pubkey: str) -> str:
        """Display name, or the first 8 characters of the pubkey."""
        record = self._store.get(pubkey)
        if record is not None and record.name:
            return record.name
        return pubkey[:8]

    def membership(self, pubkey: str) -> Disposition:
        record = self._store.get(pubkey)
        return record.type if record is not None else Disposition.NEUTRAL

    def children(self, pubkey: str) -> list[str]:
        """Members curated by `pubkey`."""
        return [
            r.pubkey for r in self._store.records()
            if r.parent == pubkey and not r.banned
        ]

    def bannedby(self, pubkey: str) -> list[str]:
        """Participants banned by `pubkey`."""
        return [
            r.pubkey for r in self._store.records()
            if r.parent == pubkey and r.banned
        ]


def _log_healing_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Profile healing failed: %s", exc, exc_info=exc)
        return
    report: HealingReport = task.result()
    logger.debug("Healing report: %s", report)
