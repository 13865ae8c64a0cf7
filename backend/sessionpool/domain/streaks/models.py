"""Domain models for daily participation streaks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class StreakOutcome(str, Enum):
    UNCHANGED = "unchanged"
    INCREMENTED = "incremented"
    STARTED = "started"


@dataclass(slots=True)
class Profile:
    user_id: str
    display_handle: Optional[str] = None
    streak: int = 0
    last_participation_date: Optional[date] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "Profile":
        """Build a profile from a storage row.

        A missing or null streak resolves to 0; a missing participation date
        stays ``None`` and means "never participated".
        """
        streak = row.get("streak")
        return cls(
            user_id=str(row["id"] if "id" in row else row["user_id"]),
            display_handle=row.get("display_handle"),
            streak=int(streak) if streak is not None else 0,
            last_participation_date=row.get("last_participation_date"),
        )

    @property
    def identity(self) -> str:
        return self.display_handle or self.user_id


@dataclass(frozen=True, slots=True)
class StreakUpdate:
    user_id: str
    outcome: StreakOutcome
    streak: int
    last_participation_date: date

    @property
    def changed(self) -> bool:
        return self.outcome is not StreakOutcome.UNCHANGED


@dataclass(slots=True)
class CreditReport:
    """Outcome of crediting one or more sessions.

    ``failed`` maps a user id, or a session id when the whole session could not
    be read, to the error code that stopped it.
    """

    updates: List[StreakUpdate] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def credited(self) -> int:
        return sum(1 for update in self.updates if update.changed)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "CreditReport") -> None:
        self.updates.extend(other.updates)
        self.missing.extend(other.missing)
        self.failed.update(other.failed)


def next_streak(profile: Profile, as_of: date) -> StreakUpdate:
    """Apply one day's participation to ``profile`` without mutating it."""
    last = profile.last_participation_date
    if last is not None and last >= as_of:
        # already counted today (or a later day was recorded first)
        return StreakUpdate(profile.user_id, StreakOutcome.UNCHANGED, profile.streak, last)
    if last == as_of - timedelta(days=1):
        return StreakUpdate(profile.user_id, StreakOutcome.INCREMENTED, profile.streak + 1, as_of)
    return StreakUpdate(profile.user_id, StreakOutcome.STARTED, 1, as_of)


def reset_cutoff(as_of: date) -> date:
    """Profiles whose last participation is strictly before this date lose their streak."""
    return as_of - timedelta(days=1)
