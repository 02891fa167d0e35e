"""Stamp deduplication — canonical ordering of a noisy stamp stream.

Relays return stamps in arbitrary order, with repeats and with
superseded stamps from the same author. Before any decision is made
the batch is sorted and reduced so that:
- stamps are ordered by created_at ascending, ties broken by id
- at most one stamp survives per (author, target, context)
- the earliest stamp per triple claims it; later ones are dropped
- neutral stamps claim their triple but are never emitted

The reduction is idempotent: uniq_stamps(uniq_stamps(s)) == uniq_stamps(s).
"""

from __future__ import annotations

from typing import Iterable

from tribes.models.stamp import Disposition, Stamp


def sort_stamps(stamps: Iterable[Stamp]) -> list[Stamp]:
    """Order stamps by created_at ascending, then by event id."""
    return sorted(stamps, key=lambda s: (s.created_at, s.id))


def uniq_stamps(stamps: Iterable[Stamp]) -> list[Stamp]:
    """Keep the first stamp per (author, target, context), dropping neutrals.

    Input order is preserved; callers sort first.
    """
    seen: set[tuple[str, str, str]] = set()
    kept: list[Stamp] = []
    for stamp in stamps:
        if stamp.key in seen:
            continue
        seen.add(stamp.key)
        if stamp.disposition is Disposition.NEUTRAL:
            continue
        kept.append(stamp)
    return kept


def canonical_stamps(stamps: Iterable[Stamp]) -> list[Stamp]:
    """Sort then deduplicate."""
    return uniq_stamps(sort_stamps(stamps))
