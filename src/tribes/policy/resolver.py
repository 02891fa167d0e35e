"""Tribe policy — loads tribe_policy.json and exposes the Tribe's settings.

Required keys fail loud when missing: `version`, `leader`, `context`,
`relays`. Optional keys fall back to the module defaults below.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Hard depth cap for resolution; also the judging level for non-members.
MAX_LEVEL = 21

DEFAULT_SYNC_TIMEOUT = 30

DEFAULT_HEALER_RELAYS = (
    "wss://relay.nostr.band",
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://purplepag.es",
)


@dataclass(frozen=True)
class TribePolicy:
    """Resolved configuration for one Tribe instance.

    Usage:
        policy = TribePolicy.from_config_dir(Path("config"))
        tribe = Tribe.from_policy(policy, network)
    """
    leader: str
    context: str
    relays: tuple[str, ...]
    timeout: int = DEFAULT_SYNC_TIMEOUT
    healer_relays: tuple[str, ...] = field(default=DEFAULT_HEALER_RELAYS)
    max_level: int = MAX_LEVEL

    def __post_init__(self) -> None:
        if not self.leader.strip():
            raise ValueError("Tribe leader must not be blank")
        if not self.context.strip():
            raise ValueError("Tribe context must not be blank")
        if not self.relays:
            raise ValueError("Tribe needs at least one relay")
        if self.timeout < 0:
            raise ValueError(f"Sync timeout must be non-negative, got {self.timeout}")
        if not (1 <= self.max_level <= MAX_LEVEL):
            raise ValueError(
                f"max_level must be in [1, {MAX_LEVEL}], got {self.max_level}"
            )

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> TribePolicy:
        """Load from the canonical config directory."""
        return cls.from_dict(_load_json(config_dir / "tribe_policy.json"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TribePolicy:
        if "version" not in data:
            raise ValueError("tribe_policy.json missing version")
        for key in ("leader", "context", "relays"):
            if key not in data:
                raise ValueError(f"tribe_policy.json missing {key}")
        return cls(
            leader=data["leader"],
            context=data["context"],
            relays=tuple(data["relays"]),
            timeout=data.get("timeout", DEFAULT_SYNC_TIMEOUT),
            healer_relays=tuple(data.get("healer_relays", DEFAULT_HEALER_RELAYS)),
            max_level=data.get("max_level", MAX_LEVEL),
        )


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
