"""Tests for profile sync and healing — proves metadata is mirrored onto the Tribe relays."""

from pathlib import Path

import pytest

from tribes.healing.healer import ProfileHealer
from tribes.healing.profiles import ProfileSync, profile_name
from tribes.models.event import EventKind
from tribes.models.membership import MembershipRecord
from tribes.models.stamp import Disposition
from tribes.network.gateway import InMemoryRelayNetwork
from tribes.persistence.membership_store import InMemoryMembershipStore, JsonMembershipStore

from factories import RELAY, event, note, pk, profile, relay_list

R = pk("root")
M1 = pk("m1")
M2 = pk("m2")
M3 = pk("m3")

DISCOVERY = "wss://discovery.test"
M1_HOME = "wss://m1.home"
M2_HOME = "wss://m2.home"


@pytest.fixture
def members(store: InMemoryMembershipStore) -> InMemoryMembershipStore:
    store.set(MembershipRecord.root(R).with_name("Root"))
    store.set(MembershipRecord(M1, R, 1, Disposition.CURATE))
    store.set(MembershipRecord(M2, R, 1, Disposition.CURATE))
    store.set(MembershipRecord(M3, R, 1, Disposition.BAN))
    return store


def _healer(network: InMemoryRelayNetwork, store: InMemoryMembershipStore) -> ProfileHealer:
    return ProfileHealer(network, store, [RELAY], [DISCOVERY])


def _published_ids(network: InMemoryRelayNetwork) -> set[str]:
    return {e.id for relays, e in network.published if relays == (RELAY,)}


# =====================================================================
# Profile sync
# =====================================================================


class TestProfileSync:
    def test_profile_name(self) -> None:
        assert profile_name(profile(M1, "Emm")) == "Emm"
        assert profile_name(event(M1, 0, [], 1, "not json")) is None
        assert profile_name(event(M1, 0, [], 1, '["list"]')) is None
        assert profile_name(event(M1, 0, [], 1, '{"about": "no name"}')) is None

    @pytest.mark.asyncio
    async def test_names_unnamed_members(self, network, members) -> None:
        network.add([RELAY], profile(M1, "Emm"), profile(M3, "Banned"))

        named = await ProfileSync(network, members, [RELAY]).sync()

        assert named == 2
        assert members.get(M1).name == "Emm"
        assert members.get(M3).name == "Banned"
        assert members.get(M2).name is None

    @pytest.mark.asyncio
    async def test_newest_profile_wins(self, network, members) -> None:
        network.add([RELAY], profile(M1, "new", 20), profile(M1, "old", 10))
        await ProfileSync(network, members, [RELAY]).sync()
        assert members.get(M1).name == "new"

    @pytest.mark.asyncio
    async def test_names_written_in_one_batch(self, network, tmp_path: Path, monkeypatch) -> None:
        store = JsonMembershipStore(tmp_path / "state.json")
        with store.batch():
            store.set(MembershipRecord.root(R))
            store.set(MembershipRecord(M1, R, 1, Disposition.CURATE))
        network.add([RELAY], profile(R, "Root"), profile(M1, "Emm"))
        writes = []
        monkeypatch.setattr(JsonMembershipStore, "_write", lambda self: writes.append(self))

        assert await ProfileSync(network, store, [RELAY]).sync() == 2
        assert len(writes) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, network, store) -> None:
        store.set(MembershipRecord.root(R).with_name("Root"))
        assert await ProfileSync(network, store, [RELAY]).sync() == 0
        assert network.queries == []


# =====================================================================
# Healing
# =====================================================================


class TestProfileHealer:
    def test_sick_excludes_banned_and_named(self, members) -> None:
        healer = _healer(InMemoryRelayNetwork(), members)
        assert set(healer.sick()) == {M1, M2}

    @pytest.mark.asyncio
    async def test_mirrors_from_member_relays(self, network, members) -> None:
        network.add([RELAY], relay_list(M1, [M1_HOME]))
        mirrored = [
            profile(M1, "Emm"),
            event(M1, EventKind.FOLLOW_LIST.value, [["p", M2]]),
            event(M1, EventKind.FILE_SERVER_LIST.value, [["server", "https://files.example"]]),
        ]
        network.add([M1_HOME], *mirrored, note(M1))

        report = await _healer(network, members).heal()

        assert _published_ids(network) == {e.id for e in mirrored}
        assert members.get(M1).name == "Emm"
        assert report.named == 1
        assert report.relay_lists == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_discovery_relays(self, network, members) -> None:
        network.add([RELAY], relay_list(M1, []))
        found = [relay_list(M2, [M2_HOME]), profile(M2, "Two")]
        network.add([DISCOVERY], *found)
        follows = event(M2, EventKind.FOLLOW_LIST.value, [["p", M1]])
        network.add([M2_HOME], follows)

        report = await _healer(network, members).heal()

        assert _published_ids(network) == {e.id for e in found} | {follows.id}
        assert members.get(M2).name == "Two"
        assert report.relay_lists == 2
        # Republished events now live on the Tribe relay
        assert {e.id for e in network.events_on(RELAY)} >= {e.id for e in found}

    @pytest.mark.asyncio
    async def test_discovery_not_asked_when_all_lists_known(self, network, members) -> None:
        network.add([RELAY], relay_list(M1, []), relay_list(M2, []))
        await _healer(network, members).heal()
        assert all(DISCOVERY not in relays for relays, _ in network.queries)

    @pytest.mark.asyncio
    async def test_unreachable_member_relays_skipped(self, members) -> None:
        network = InMemoryRelayNetwork(offline=[M1_HOME])
        network.add([RELAY], relay_list(M1, [M1_HOME]), relay_list(M2, [M2_HOME]))
        network.add([M2_HOME], profile(M2, "Two"))

        report = await _healer(network, members).heal()

        assert report.unreachable == [M1_HOME]
        assert members.get(M2).name == "Two"
        assert members.get(M1).name is None

    @pytest.mark.asyncio
    async def test_unreachable_discovery_relays_skipped(self, members) -> None:
        network = InMemoryRelayNetwork(offline=[DISCOVERY])
        report = await _healer(network, members).heal()
        assert report.unreachable == [DISCOVERY]
        assert report.republished == 0

    @pytest.mark.asyncio
    async def test_healthy_store_makes_no_queries(self, network, store) -> None:
        store.set(MembershipRecord.root(R).with_name("Root"))
        report = await _healer(network, store).heal()
        assert report.healthy
        assert network.queries == []

    @pytest.mark.asyncio
    async def test_rerun_converges(self, network, members) -> None:
        network.add([RELAY], relay_list(M1, [M1_HOME]), relay_list(M2, [M2_HOME]))
        network.add([M1_HOME], profile(M1, "Emm"))
        network.add([M2_HOME], profile(M2, "Two"))

        await _healer(network, members).heal()
        second = await _healer(network, members).heal()

        assert second.healthy
        assert members.get(M1).name == "Emm"
        assert members.get(M2).name == "Two"
