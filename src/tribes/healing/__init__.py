"""Healing module — member names and metadata mirroring."""

from tribes.healing.healer import HealingReport, ProfileHealer
from tribes.healing.profiles import ProfileSync, profile_name

__all__ = [
    "HealingReport",
    "ProfileHealer",
    "ProfileSync",
    "profile_name",
]
