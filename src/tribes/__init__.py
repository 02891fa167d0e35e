"""Tribes — decentralized trust hierarchies and event moderation.

A Tribe resolves a membership hierarchy from curate/ban stamps published
on an event network, rooted at a single leader, and uses it to judge
arbitrary events.
"""

from tribes.errors import (
    MalformedStampError,
    NetworkError,
    ResolutionInvariantError,
    SigningError,
    TribeError,
    UnknownParticipantError,
)
from tribes.judgement.engine import Judgement
from tribes.models.event import Event, EventKind
from tribes.models.membership import MembershipRecord
from tribes.models.stamp import Disposition, Stamp
from tribes.service import SyncResult, Tribe

__all__ = [
    "Disposition",
    "Event",
    "EventKind",
    "Judgement",
    "MalformedStampError",
    "MembershipRecord",
    "NetworkError",
    "ResolutionInvariantError",
    "SigningError",
    "Stamp",
    "SyncResult",
    "Tribe",
    "TribeError",
    "UnknownParticipantError",
]
