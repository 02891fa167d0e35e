"""Hierarchy module — stamp deduplication and level-by-level resolution."""

from tribes.hierarchy.dedup import canonical_stamps, sort_stamps, uniq_stamps
from tribes.hierarchy.resolver import (
    HierarchyResolver,
    LevelOutcome,
    LevelState,
    ResolutionReport,
    decide_level,
)

__all__ = [
    "canonical_stamps",
    "sort_stamps",
    "uniq_stamps",
    "HierarchyResolver",
    "LevelOutcome",
    "LevelState",
    "ResolutionReport",
    "decide_level",
]
