"""Tests for the membership store — proves both backends keep records and metadata apart."""

import json
from pathlib import Path

import pytest

from tribes.hierarchy.resolver import HierarchyResolver
from tribes.models.membership import MembershipRecord
from tribes.models.stamp import Disposition
from tribes.persistence.membership_store import (
    LAST_SYNC_KEY,
    LEADER_KEY,
    InMemoryMembershipStore,
    JsonMembershipStore,
    MembershipStore,
)

from factories import CONTEXT, RELAY, pk, pubkey_stamp

LEADER = pk("leader")
M1 = pk("m1")
M2 = pk("m2")


def _populate(store: MembershipStore) -> None:
    store.set(MembershipRecord.root(LEADER))
    store.set(MembershipRecord(M1, LEADER, 1, Disposition.CURATE, name="Emm One"))
    store.set(MembershipRecord(M2, M1, 2, Disposition.BAN))
    store.set_meta(LEADER_KEY, LEADER)
    store.set_meta(LAST_SYNC_KEY, "1700000000")


@pytest.fixture(params=["memory", "json"])
def any_store(request, tmp_path: Path) -> MembershipStore:
    if request.param == "memory":
        return InMemoryMembershipStore()
    return JsonMembershipStore(tmp_path / "state.json")


# =====================================================================
# Shared behaviour
# =====================================================================


class TestMembershipStore:
    def test_get_unknown_returns_none(self, any_store: MembershipStore) -> None:
        assert any_store.get(M1) is None
        assert M1 not in any_store

    def test_set_and_get(self, any_store: MembershipStore) -> None:
        _populate(any_store)
        assert any_store.get(M1).name == "Emm One"
        assert any_store.get(M2).type == Disposition.BAN
        assert len(any_store) == 3
        assert set(any_store.keys()) == {LEADER, M1, M2}

    def test_metadata_is_not_a_record(self, any_store: MembershipStore) -> None:
        _populate(any_store)
        assert LEADER_KEY not in any_store.keys()
        assert any_store.get_meta(LAST_SYNC_KEY) == "1700000000"

    def test_delete(self, any_store: MembershipStore) -> None:
        _populate(any_store)
        any_store.delete(M2)
        any_store.delete(M2)
        assert any_store.get(M2) is None

    def test_clear_keeps_metadata(self, any_store: MembershipStore) -> None:
        _populate(any_store)
        any_store.clear()
        assert any_store.keys() == []
        assert any_store.get_meta(LEADER_KEY) == LEADER

    def test_reset_drops_everything(self, any_store: MembershipStore) -> None:
        _populate(any_store)
        any_store.reset()
        assert any_store.keys() == []
        assert any_store.get_meta(LEADER_KEY) is None

    def test_records_iterates_all(self, any_store: MembershipStore) -> None:
        _populate(any_store)
        assert {r.pubkey for r in any_store.records()} == {LEADER, M1, M2}


# =====================================================================
# JSON backend
# =====================================================================


class TestJsonMembershipStore:
    def test_survives_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        _populate(JsonMembershipStore(path))

        reloaded = JsonMembershipStore(path)
        assert reloaded.get(M1) == MembershipRecord(
            M1, LEADER, 1, Disposition.CURATE, name="Emm One",
        )
        assert reloaded.get_meta(LEADER_KEY) == LEADER

    def test_file_layout(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        _populate(JsonMembershipStore(path))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["version"] == 1
        assert data["members"][LEADER] == "God,0,curate"
        assert data["members"][M1] == f"{LEADER},1,curate,Emm One"
        assert data["members"][M2] == f"{M1},2,ban"
        assert data["meta"] == {"leader": LEADER, "last_sync": "1700000000"}

    def test_unknown_version_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": 99, "members": {}, "meta": {}}))
        with pytest.raises(ValueError, match="version"):
            JsonMembershipStore(path)

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dir" / "state.json"
        store = JsonMembershipStore(path)
        store.set_meta(LEADER_KEY, LEADER)
        assert path.exists()

    def test_write_leaves_no_temp_file(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        _populate(JsonMembershipStore(path))
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


# =====================================================================
# Batched writes
# =====================================================================


def _count_writes(monkeypatch) -> list[Path]:
    writes: list[Path] = []
    write = JsonMembershipStore._write

    def counting(self) -> None:
        writes.append(self._path)
        write(self)

    monkeypatch.setattr(JsonMembershipStore, "_write", counting)
    return writes


class TestBatch:
    def test_batch_writes_once(self, tmp_path: Path, monkeypatch) -> None:
        path = tmp_path / "state.json"
        store = JsonMembershipStore(path)
        writes = _count_writes(monkeypatch)

        with store.batch():
            _populate(store)
            store.clear()
            _populate(store)
            assert not path.exists()

        assert len(writes) == 1
        assert JsonMembershipStore(path).get(M1).name == "Emm One"

    def test_nested_batches_write_at_outermost_exit(self, tmp_path: Path, monkeypatch) -> None:
        store = JsonMembershipStore(tmp_path / "state.json")
        writes = _count_writes(monkeypatch)

        with store.batch():
            with store.batch():
                store.set(MembershipRecord.root(LEADER))
            assert writes == []
            store.set_meta(LEADER_KEY, LEADER)

        assert len(writes) == 1

    def test_untouched_batch_does_not_write(self, tmp_path: Path, monkeypatch) -> None:
        store = JsonMembershipStore(tmp_path / "state.json")
        writes = _count_writes(monkeypatch)
        with store.batch():
            store.get(M1)
        assert writes == []

    def test_batch_flushes_on_error(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        store = JsonMembershipStore(path)

        with pytest.raises(RuntimeError):
            with store.batch():
                store.set(MembershipRecord.root(LEADER))
                raise RuntimeError("interrupted")

        assert JsonMembershipStore(path).get(LEADER) is not None

    def test_writes_resume_after_batch(self, tmp_path: Path, monkeypatch) -> None:
        store = JsonMembershipStore(tmp_path / "state.json")
        with store.batch():
            store.set(MembershipRecord.root(LEADER))
        writes = _count_writes(monkeypatch)
        store.set_meta(LEADER_KEY, LEADER)
        assert len(writes) == 1

    def test_memory_store_batch_is_transparent(self) -> None:
        store = InMemoryMembershipStore()
        with store.batch():
            _populate(store)
            assert store.get(M1) is not None
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_resolution_writes_once(self, tmp_path: Path, monkeypatch, network) -> None:
        network.add([RELAY],
            pubkey_stamp(LEADER, M1, 10),
            pubkey_stamp(M1, M2, 20, Disposition.BAN),
        )
        path = tmp_path / "state.json"
        store = JsonMembershipStore(path)
        writes = _count_writes(monkeypatch)

        await HierarchyResolver(network, store, [RELAY], LEADER, CONTEXT).resolve()

        assert len(writes) == 1
        assert set(JsonMembershipStore(path).keys()) == {LEADER, M1, M2}
