"""Membership records — the resolved standing of each participant.

One record exists per participant seen during resolution, plus a
synthetic record for the leader. Records are rebuilt from scratch on
every sync; the only field ever patched in place is `name`.

Invariants:
- The root record has parent GOD and level 0.
- For every other record, level == level(parent) + 1.
- `type` is curate or ban. Neutral is never stored; it is the answer
  for participants without a record.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from tribes.models.stamp import Disposition

GOD = "God"

# Compact encoding: parent,level,type[,name]
RECORD_ENCODING_VERSION = 1


@dataclass(frozen=True)
class MembershipRecord:
    """Resolved standing of one participant."""
    pubkey: str
    parent: str
    level: int
    type: Disposition
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.level < 0:
            raise ValueError(f"Level must be non-negative, got {self.level}")
        if self.type not in (Disposition.CURATE, Disposition.BAN):
            raise ValueError(f"Cannot store a {self.type.value} membership")

    @property
    def is_root(self) -> bool:
        return self.parent == GOD

    @property
    def banned(self) -> bool:
        return self.type is Disposition.BAN

    def with_name(self, name: str) -> MembershipRecord:
        return replace(self, name=name)

    def encode(self) -> str:
        """Encode as `parent,level,type[,name]`."""
        fields = [self.parent, str(self.level), self.type.value]
        if self.name is not None:
            fields.append(self.name)
        return ",".join(fields)

    @staticmethod
    def decode(pubkey: str, value: str) -> MembershipRecord:
        """Decode the compact form. The name may itself contain commas."""
        parts = value.split(",", 3)
        if len(parts) < 3:
            raise ValueError(f"Invalid membership value for {pubkey}: {value!r}")
        parent, level, typ = parts[:3]
        name = parts[3] if len(parts) == 4 else None
        return MembershipRecord(
            pubkey=pubkey,
            parent=parent,
            level=int(level),
            type=Disposition(typ),
            name=name,
        )

    @staticmethod
    def root(leader: str) -> MembershipRecord:
        return MembershipRecord(
            pubkey=leader, parent=GOD, level=0, type=Disposition.CURATE,
        )
