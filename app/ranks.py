from __future__ import annotations

import enum
from typing import Dict, Iterable, List, Optional


class Rank(str, enum.Enum):
    PROBATIONARY = "Probationary"
    OFFICER = "Officer"
    CORPORAL = "Corporal"
    SERGEANT = "Sergeant"
    LIEUTENANT = "Lieutenant"
    CAPTAIN = "Captain"
    DEPUTY_CHIEF = "Deputy Chief"
    CHIEF = "Chief"

    def is_probationary(self) -> bool:
        return self is Rank.PROBATIONARY

    def is_supervisor(self) -> bool:
        return self in SUPERVISOR_RANKS

    @property
    def order(self) -> int:
        return RANK_ORDER.index(self)

    @classmethod
    def parse(cls, label: str | None) -> Optional["Rank"]:
        """Return the rank for a stored label, or None when it is not one we know."""
        value = normalize_label(label)
        if not value:
            return None
        for rank in cls:
            if value == normalize_label(rank.value):
                return rank
        return _RANK_ALIASES.get(value)


RANK_ORDER: List[Rank] = [
    Rank.CHIEF,
    Rank.DEPUTY_CHIEF,
    Rank.CAPTAIN,
    Rank.LIEUTENANT,
    Rank.SERGEANT,
    Rank.CORPORAL,
    Rank.OFFICER,
    Rank.PROBATIONARY,
]

SUPERVISOR_RANKS = frozenset(
    {Rank.SERGEANT, Rank.LIEUTENANT, Rank.CAPTAIN, Rank.DEPUTY_CHIEF, Rank.CHIEF}
)

_RANK_ALIASES: Dict[str, Rank] = {
    "ppo": Rank.PROBATIONARY,
    "probationary officer": Rank.PROBATIONARY,
    "probationary peace officer": Rank.PROBATIONARY,
    "patrol officer": Rank.OFFICER,
    "sgt": Rank.SERGEANT,
    "lt": Rank.LIEUTENANT,
    "capt": Rank.CAPTAIN,
}


POSITION_GROUPS: Dict[str, List[str]] = {
    "Supervision": [
        "Supervisor",
        "Watch Commander",
    ],
    "Districts": [
        "District 1",
        "District 2",
        "District 3",
        "District 4",
        "District 5",
        "District 6",
        "District 7",
        "District 8",
    ],
    "Patrol": [
        "Patrol",
        "Traffic",
        "Officer",
    ],
    "Partner": [
        "Riding with partner",  # PPO riding along with their senior partner
        "Emergency partner",
    ],
}

_RIDING_KEYWORDS = ("riding with", "riding partner", "emergency partner")


def normalize_label(label: str | None) -> str:
    return (label or "").strip().lower()


def catalog_positions(extra: Iterable[str] = ()) -> List[str]:
    """Return the sorted list of positions that count as regular patrol work."""
    positions: List[str] = []
    for names in POSITION_GROUPS.values():
        positions.extend(names)
    positions.extend(name for name in extra if name and name.strip())
    return sorted(set(positions))


def is_riding_with_partner(position: str | None) -> bool:
    label = normalize_label(position)
    if not label:
        return False
    return any(keyword in label for keyword in _RIDING_KEYWORDS)


def is_special_assignment(position: str | None, extra_positions: Iterable[str] = ()) -> bool:
    """A position outside the catalog is a special assignment; blank positions are not."""
    label = normalize_label(position)
    if not label:
        return False
    if is_riding_with_partner(position):
        return False
    known = {normalize_label(name) for name in catalog_positions(extra_positions)}
    return label not in known


def position_group(position: str | None) -> str:
    label = normalize_label(position)
    if not label:
        return "Unassigned"
    for group, names in POSITION_GROUPS.items():
        for name in names:
            if label == normalize_label(name):
                return group
    if is_riding_with_partner(position):
        return "Partner"
    return "Special"
