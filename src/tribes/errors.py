"""Error taxonomy for the Tribe core.

Recoverable errors (malformed data, unknown participants, network and
signer failures) are surfaced to the caller. ResolutionInvariantError
signals a programming error and is never caught by the core.
"""

from __future__ import annotations


class TribeError(Exception):
    """Base class for all Tribe errors."""


class MalformedStampError(TribeError, ValueError):
    """A stamp lacks a required tag or repeats a single-valued tag."""

    def __init__(self, event_id: str, reason: str) -> None:
        super().__init__(f"Malformed stamp [{event_id}]: {reason}")
        self.event_id = event_id
        self.reason = reason


class UnknownParticipantError(TribeError, LookupError):
    """The participant has no record in the membership store."""

    def __init__(self, pubkey: str) -> None:
        super().__init__(f"{pubkey} is not a member")
        self.pubkey = pubkey


class NetworkError(TribeError):
    """A query or publish through the event network failed."""


class SigningError(TribeError):
    """No signer is available, or the signer refused the template."""


class ResolutionInvariantError(TribeError, RuntimeError):
    """An algorithmic invariant was violated during resolution or judgement."""
