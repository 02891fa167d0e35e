"""Profile sync — display names for members, read from the Tribe relays."""

from __future__ import annotations

import json
import logging
from typing import Optional

from tribes.models.event import Event, EventKind
from tribes.network.gateway import EventNetworkGateway, Filter
from tribes.persistence.membership_store import MembershipStore

logger = logging.getLogger(__name__)


def profile_name(profile: Event) -> Optional[str]:
    """Return the `name` field of a kind-0 profile, if any."""
    try:
        data = json.loads(profile.content)
    except ValueError:
        logger.warning("Profile %s has invalid JSON content", profile.id)
        return None
    if not isinstance(data, dict):
        return None
    name = data.get("name")
    if isinstance(name, str) and name:
        return name
    return None


def store_name(store: MembershipStore, profile: Event) -> bool:
    """Record the profile's name on its author's record.

    Returns True if a name was written. Unknown authors are skipped.
    """
    name = profile_name(profile)
    if name is None:
        return False
    record = store.get(profile.pubkey)
    if record is None or record.name == name:
        return False
    store.set(record.with_name(name))
    return True


class ProfileSync:
    """Fills in names for records that have none.

    Usage:
        named = await ProfileSync(network, store, relays).sync()
    """

    def __init__(
        self,
        network: EventNetworkGateway,
        store: MembershipStore,
        relays: list[str],
    ) -> None:
        self._network = network
        self._store = store
        self._relays = list(relays)

    def unnamed(self) -> list[str]:
        return [r.pubkey for r in self._store.records() if r.name is None]

    async def sync(self) -> int:
        """Fetch profiles for unnamed members. Returns the number named."""
        pubkeys = self.unnamed()
        if not pubkeys:
            return 0
        profiles = await self._network.query(
            self._relays,
            Filter(kinds=(EventKind.PROFILE.value,), authors=tuple(pubkeys)),
        )
        # Newest profile wins when a relay returns several
        profiles.sort(key=lambda p: p.created_at)
        named: set[str] = set()
        with self._store.batch():
            for profile in profiles:
                if profile.kind == EventKind.PROFILE.value and store_name(self._store, profile):
                    named.add(profile.pubkey)
        logger.info("Profile sync: %d of %d unnamed members named", len(named), len(pubkeys))
        return len(named)
