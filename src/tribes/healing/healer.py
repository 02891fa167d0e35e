"""Profile healer — mirrors member metadata onto the Tribe relays.

Members whose records have no name are "sick": their profile could not
be found on the Tribe relays. Healing runs in three passes:

1. Look up each sick member's relay list (kind 10002) on the Tribe relays.
2. For members still without one, ask the well-known discovery relays
   for relay lists and profiles, and republish whatever is found onto
   the Tribe relays.
3. For every member with a known relay list, fetch profile, follow list
   and file-server list from the member's own relays and republish them
   onto the Tribe relays.

Names found in kind-0 profiles along the way are stored on the member
records. This is the only store mutation healing performs. Healing is
best-effort and convergent: a rerun only adds data. Failures on a single
member's relays are logged and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from tribes.errors import NetworkError
from tribes.healing.profiles import store_name
from tribes.models.event import Event, EventKind, relay_urls
from tribes.network.gateway import EventNetworkGateway, Filter
from tribes.persistence.membership_store import MembershipStore
from tribes.policy.resolver import DEFAULT_HEALER_RELAYS

logger = logging.getLogger(__name__)

MIRRORED_KINDS = (
    EventKind.PROFILE.value,
    EventKind.FOLLOW_LIST.value,
    EventKind.FILE_SERVER_LIST.value,
)


@dataclass
class HealingReport:
    """Outcome of one healing pass."""
    sick: list[str] = field(default_factory=list)
    relay_lists: int = 0
    republished: int = 0
    named: int = 0
    unreachable: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.sick


class ProfileHealer:
    """Background repair of missing member metadata.

    Usage:
        healer = ProfileHealer(network, store, tribe_relays)
        report = await healer.heal()
    """

    def __init__(
        self,
        network: EventNetworkGateway,
        store: MembershipStore,
        relays: Sequence[str],
        healer_relays: Sequence[str] = DEFAULT_HEALER_RELAYS,
    ) -> None:
        self._network = network
        self._store = store
        self._relays = list(relays)
        self._healer_relays = list(healer_relays)

    def sick(self) -> list[str]:
        """Known, non-banned members without a resolved name."""
        return [
            r.pubkey for r in self._store.records()
            if r.name is None and not r.banned
        ]

    async def heal(self) -> HealingReport:
        report = HealingReport(sick=self.sick())
        if report.healthy:
            logger.debug("No sick profiles")
            return report

        relay_lists = await self._tribe_relay_lists(report.sick)
        missing = [pk for pk in report.sick if pk not in relay_lists]
        if missing:
            await self._discover(missing, relay_lists, report)

        report.relay_lists = len(relay_lists)
        for pubkey, relay_list in relay_lists.items():
            await self._mirror_member(pubkey, relay_urls(relay_list), report)

        logger.info(
            "Healing complete: %d sick, %d relay lists, %d events republished, %d named",
            len(report.sick), report.relay_lists, report.republished, report.named,
        )
        return report

    async def _tribe_relay_lists(self, pubkeys: list[str]) -> dict[str, Event]:
        events = await self._network.query(
            self._relays,
            Filter(kinds=(EventKind.RELAY_LIST.value,), authors=tuple(pubkeys)),
        )
        relay_lists: dict[str, Event] = {}
        for event in events:
            if event.kind == EventKind.RELAY_LIST.value:
                _keep_newest(relay_lists, event)
        return relay_lists

    async def _discover(
        self,
        pubkeys: list[str],
        relay_lists: dict[str, Event],
        report: HealingReport,
    ) -> None:
        """Fetch relay lists and profiles from the discovery relays."""
        try:
            events = await self._network.query(
                self._healer_relays,
                Filter(
                    kinds=(EventKind.RELAY_LIST.value, EventKind.PROFILE.value),
                    authors=tuple(pubkeys),
                ),
            )
        except NetworkError as exc:
            logger.warning("Discovery relays failed: %s", exc)
            report.unreachable.extend(self._healer_relays)
            return

        for event in events:
            if event.kind == EventKind.RELAY_LIST.value:
                _keep_newest(relay_lists, event)
            elif event.kind == EventKind.PROFILE.value:
                if store_name(self._store, event):
                    report.named += 1
            await self._republish(event, report)

    async def _mirror_member(
        self,
        pubkey: str,
        member_relays: list[str],
        report: HealingReport,
    ) -> None:
        """Copy a member's important events from its relays to the Tribe relays."""
        if not member_relays:
            return
        try:
            events = await self._network.query(
                member_relays,
                Filter(kinds=MIRRORED_KINDS, authors=(pubkey,)),
            )
        except NetworkError as exc:
            logger.warning("Cannot reach relays of %s: %s", pubkey, exc)
            report.unreachable.extend(member_relays)
            return

        for event in events:
            if event.kind == EventKind.PROFILE.value and store_name(self._store, event):
                report.named += 1
            await self._republish(event, report)

    async def _republish(self, event: Event, report: HealingReport) -> None:
        try:
            await self._network.publish(self._relays, event)
        except NetworkError as exc:
            logger.warning("Republishing %s failed: %s", event.id, exc)
            return
        report.republished += 1


def _keep_newest(index: dict[str, Event], event: Event) -> None:
    current = index.get(event.pubkey)
    if current is None or event.created_at > current.created_at:
        index[event.pubkey] = event
