"""Value types produced and consumed by the matching engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class GroupType(str, Enum):
    MATCHED = "matched"
    UNIVERSAL = "universal"
    LOBBY = "lobby"


UNIVERSAL_SESSION_TYPE = "Universal Pool"


@dataclass(frozen=True, slots=True)
class Participant:
    """A waiting user as seen by one matching run."""

    user_id: str
    display_handle: str | None
    streak: int
    session_type: str


@dataclass(frozen=True, slots=True)
class Group:
    members: Tuple[Participant, ...]
    type: GroupType
    session_type: str
    avg_streak: int

    @property
    def size(self) -> int:
        return len(self.members)

    def user_ids(self) -> list[str]:
        return [member.user_id for member in self.members]


@dataclass(frozen=True, slots=True)
class MatchResult:
    groups: Tuple[Group, ...] = field(default_factory=tuple)
    lobby_users: Tuple[Participant, ...] = field(default_factory=tuple)

    @property
    def matched_count(self) -> int:
        return sum(group.size for group in self.groups)

    def is_empty(self) -> bool:
        return not self.groups and not self.lobby_users
