"""Persistence layer — membership records and sync metadata."""

from tribes.persistence.membership_store import (
    LAST_SYNC_KEY,
    LEADER_KEY,
    InMemoryMembershipStore,
    JsonMembershipStore,
    MembershipStore,
)

__all__ = [
    "MembershipStore",
    "InMemoryMembershipStore",
    "JsonMembershipStore",
    "LEADER_KEY",
    "LAST_SYNC_KEY",
]
