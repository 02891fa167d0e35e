"""Membership store — the single source of truth for hierarchy state.

Two namespaces are kept apart:
- member records, keyed by participant pubkey
- scalar metadata (`leader`, `last_sync`), keyed by name

The JSON backend persists both in one versioned document:

    {
      "version": 1,
      "members": {"<pubkey>": "parent,level,type[,name]"},
      "meta": {"leader": "<pubkey>", "last_sync": "1700000000"}
    }

This is a simple file-based store suitable for a single client.
Other backends implement the same interface.
"""

from __future__ import annotations

import abc
import contextlib
import json
from pathlib import Path
from typing import Any, Iterator, Optional

from tribes.models.membership import RECORD_ENCODING_VERSION, MembershipRecord

LEADER_KEY = "leader"
LAST_SYNC_KEY = "last_sync"


class MembershipStore(abc.ABC):
    """Typed key-value store for membership records and metadata.

    Thread-safety: not thread-safe. All mutation happens inside the
    Tribe's single async flow.
    """

    # ------------------------------------------------------------------
    # Member records
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get(self, pubkey: str) -> Optional[MembershipRecord]:
        """Look up a record. Returns None for unknown participants."""

    @abc.abstractmethod
    def set(self, record: MembershipRecord) -> None:
        """Insert or overwrite the record for `record.pubkey`."""

    @abc.abstractmethod
    def delete(self, pubkey: str) -> None:
        """Remove a record if present."""

    @abc.abstractmethod
    def keys(self) -> list[str]:
        """Return the pubkeys of all stored records."""

    @abc.abstractmethod
    def clear(self) -> None:
        """Remove every member record. Metadata is kept."""

    def records(self) -> Iterator[MembershipRecord]:
        for pubkey in self.keys():
            record = self.get(pubkey)
            if record is not None:
                yield record

    def __contains__(self, pubkey: object) -> bool:
        return isinstance(pubkey, str) and self.get(pubkey) is not None

    def __len__(self) -> int:
        return len(self.keys())

    # ------------------------------------------------------------------
    # Scalar metadata
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_meta(self, key: str) -> Optional[str]:
        """Read a metadata value."""

    @abc.abstractmethod
    def set_meta(self, key: str, value: str) -> None:
        """Write a metadata value."""

    @abc.abstractmethod
    def clear_meta(self) -> None:
        """Remove every metadata value."""

    def reset(self) -> None:
        """Drop all state, records and metadata alike."""
        self.clear()
        self.clear_meta()

    @contextlib.contextmanager
    def batch(self) -> Iterator[None]:
        """Group mutations. Durable backends may defer writes until exit."""
        yield


class InMemoryMembershipStore(MembershipStore):
    """Process-local store, lost on exit."""

    def __init__(self) -> None:
        self._members: dict[str, MembershipRecord] = {}
        self._meta: dict[str, str] = {}

    def get(self, pubkey: str) -> Optional[MembershipRecord]:
        return self._members.get(pubkey)

    def set(self, record: MembershipRecord) -> None:
        self._members[record.pubkey] = record

    def delete(self, pubkey: str) -> None:
        self._members.pop(pubkey, None)

    def keys(self) -> list[str]:
        return list(self._members)

    def clear(self) -> None:
        self._members.clear()

    def get_meta(self, key: str) -> Optional[str]:
        return self._meta.get(key)

    def set_meta(self, key: str, value: str) -> None:
        self._meta[key] = value

    def clear_meta(self) -> None:
        self._meta.clear()


class JsonMembershipStore(MembershipStore):
    """JSON file-based store.

    Usage:
        store = JsonMembershipStore(Path("data/tribe_state.json"))
        store.set(MembershipRecord.root(leader))
        store.set_meta("last_sync", "1700000000")

        # On restart:
        store = JsonMembershipStore(Path("data/tribe_state.json"))
        record = store.get(leader)

    Every mutation rewrites the file, unless it happens inside `batch()`.
    The file is replaced atomically through a sibling temp file.
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._members: dict[str, str] = {}
        self._meta: dict[str, str] = {}
        self._batch_depth = 0
        self._dirty = False
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            state: dict[str, Any] = json.load(f)
        version = state.get("version")
        if version != RECORD_ENCODING_VERSION:
            raise ValueError(
                f"Unsupported membership store version {version!r} in {self._path}"
            )
        self._members = dict(state.get("members", {}))
        self._meta = dict(state.get("meta", {}))

    def _save(self) -> None:
        if self._batch_depth:
            self._dirty = True
            return
        self._write()

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        state = {
            "version": RECORD_ENCODING_VERSION,
            "members": self._members,
            "meta": self._meta,
        }
        tmp = self._path.with_name(self._path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, sort_keys=True, ensure_ascii=False)
        tmp.replace(self._path)
        self._dirty = False

    @contextlib.contextmanager
    def batch(self) -> Iterator[None]:
        """Write once when the outermost batch exits, even on error."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if not self._batch_depth and self._dirty:
                self._write()

    def get(self, pubkey: str) -> Optional[MembershipRecord]:
        value = self._members.get(pubkey)
        if value is None:
            return None
        return MembershipRecord.decode(pubkey, value)

    def set(self, record: MembershipRecord) -> None:
        self._members[record.pubkey] = record.encode()
        self._save()

    def delete(self, pubkey: str) -> None:
        if pubkey in self._members:
            del self._members[pubkey]
            self._save()

    def keys(self) -> list[str]:
        return list(self._members)

    def clear(self) -> None:
        self._members.clear()
        self._save()

    def get_meta(self, key: str) -> Optional[str]:
        return self._meta.get(key)

    def set_meta(self, key: str, value: str) -> None:
        self._meta[key] = value
        self._save()

    def clear_meta(self) -> None:
        self._meta.clear()
        self._save()
